"""
Configuration loading and validation.
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from coinpeek.rules.types import ConditionKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "coinpeek.yaml"

DEFAULT_SYMBOLS = [
    "BTCUSDT",
    "ETHUSDT",
    "BNBUSDT",
    "ADAUSDT",
    "SOLUSDT",
    "DOTUSDT",
    "DOGEUSDT",
    "AVAXUSDT",
    "LTCUSDT",
    "LINKUSDT",
]


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "coinpeek.db"


@dataclass
class ApiConfig:
    """Exchange API configuration."""

    base_url: str = "https://api.binance.com"
    timeout_seconds: float = 10.0
    max_workers: int = 10


@dataclass
class ChartConfig:
    """Candle chart configuration."""

    interval: str = "5m"
    limit: int = 50


@dataclass
class WebConfig:
    """Browser dashboard configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class AlertConfig:
    """Alert seeded at startup."""

    symbol: str
    condition: str
    threshold: float
    message: Optional[str] = None

    @property
    def condition_kind(self) -> ConditionKind:
        return ConditionKind(self.condition)


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    log_file: str = "coinpeek.log"
    alert_cooldown_minutes: int = 60


@dataclass
class AppConfig:
    """Main application configuration."""

    symbols: list[str] = field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    refresh_interval_seconds: int = 5
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)
    web: WebConfig = field(default_factory=WebConfig)
    alerts: list[AlertConfig] = field(default_factory=list)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _validate_symbols(symbols: Any) -> list[str]:
    if not isinstance(symbols, list) or not symbols:
        raise ConfigValidationError("symbols must be a non-empty list")

    cleaned = []
    for symbol in symbols:
        if not isinstance(symbol, str) or not symbol.strip():
            raise ConfigValidationError(f"Invalid symbol: {symbol!r}")
        cleaned.append(symbol.strip().upper())
    return cleaned


def _validate_alerts(alerts: Any) -> list[AlertConfig]:
    if alerts is None:
        return []
    if not isinstance(alerts, list):
        raise ConfigValidationError("alerts must be a list")

    valid_conditions = {kind.value for kind in ConditionKind}
    result = []
    for entry in alerts:
        if not isinstance(entry, dict):
            raise ConfigValidationError(f"Invalid alert entry: {entry!r}")

        symbol = entry.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            raise ConfigValidationError(f"Alert needs a symbol: {entry!r}")

        condition = entry.get("condition")
        if condition not in valid_conditions:
            raise ConfigValidationError(
                f"Unknown alert condition {condition!r}, "
                f"expected one of {sorted(valid_conditions)}"
            )

        threshold = entry.get("threshold")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ConfigValidationError(f"Alert threshold must be a number: {entry!r}")

        message = entry.get("message")
        if message is not None and not isinstance(message, str):
            raise ConfigValidationError(f"Alert message must be a string: {entry!r}")

        result.append(
            AlertConfig(
                symbol=symbol.strip().upper(),
                condition=condition,
                threshold=float(threshold),
                message=message,
            )
        )
    return result


SECTION_NAMES = ("database", "api", "chart", "web", "advanced")


def _section(config_dict: dict[str, Any], name: str) -> dict[str, Any]:
    section = config_dict.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigValidationError(f"{name} must be a mapping, got {section!r}")
    return section


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    for name in SECTION_NAMES:
        _section(config_dict, name)

    interval = config_dict.get("refresh_interval_seconds", 5)
    if not _is_positive_int(interval):
        raise ConfigValidationError(
            f"refresh_interval_seconds must be a positive integer, got {interval!r}"
        )

    db_config = _section(config_dict, "database")
    db_path = db_config.get("path", "coinpeek.db")
    if not isinstance(db_path, str) or not db_path:
        raise ConfigValidationError("Database path is required")

    api = _section(config_dict, "api")
    base_url = api.get("base_url", "https://api.binance.com")
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigValidationError("api.base_url must be a non-empty string")
    timeout = api.get("timeout_seconds", 10.0)
    if (
        isinstance(timeout, bool)
        or not isinstance(timeout, (int, float))
        or not timeout > 0
    ):
        raise ConfigValidationError(
            f"api.timeout_seconds must be a positive number, got {timeout!r}"
        )
    if not _is_positive_int(api.get("max_workers", 10)):
        raise ConfigValidationError("api.max_workers must be a positive integer")

    web = _section(config_dict, "web")
    port = web.get("port", 8080)
    if not _is_positive_int(port) or port > 65535:
        raise ConfigValidationError(f"Invalid web port: {port!r}")

    chart = _section(config_dict, "chart")
    if not _is_positive_int(chart.get("limit", 50)):
        raise ConfigValidationError("chart.limit must be a positive integer")

    advanced = _section(config_dict, "advanced")
    cooldown = advanced.get("alert_cooldown_minutes", 60)
    if isinstance(cooldown, bool) or not isinstance(cooldown, int) or cooldown < 0:
        raise ConfigValidationError(
            f"alert_cooldown_minutes must be a non-negative integer, got {cooldown!r}"
        )


def write_default_config(config_path: str) -> AppConfig:
    """Write the default configuration to ``config_path`` and return it."""
    config = AppConfig()
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    return config


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """
    Load configuration from a YAML (or JSON) file.

    A missing file is created with the default configuration.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    path = Path(config_path)
    if not path.exists():
        logger.info(f"Created default config file: {config_path}")
        return write_default_config(config_path)

    try:
        with open(path) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Cannot parse {config_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(f"{config_path} must contain a mapping")

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    # Validate
    _validate_config(config_dict)
    symbols = _validate_symbols(config_dict.get("symbols", list(DEFAULT_SYMBOLS)))
    alerts = _validate_alerts(config_dict.get("alerts"))

    # Build config objects
    try:
        database = DatabaseConfig(**_section(config_dict, "database"))
        api = ApiConfig(**_section(config_dict, "api"))
        chart = ChartConfig(**_section(config_dict, "chart"))
        web = WebConfig(**_section(config_dict, "web"))
        advanced = AdvancedConfig(**_section(config_dict, "advanced"))
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}") from e

    return AppConfig(
        symbols=symbols,
        refresh_interval_seconds=config_dict.get("refresh_interval_seconds", 5),
        database=database,
        api=api,
        chart=chart,
        web=web,
        alerts=alerts,
        advanced=advanced,
    )

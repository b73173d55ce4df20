"""
Main application entry point.
"""

import logging
import sqlite3
import sys
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv()

from coinpeek.config import AppConfig, ConfigValidationError
from coinpeek.data.fetcher import BinanceFetcher, FetchError, ApiError
from coinpeek.database.connection import Database
from coinpeek.database.repository import (
    CandleRepository,
    PriceRepository,
    SyncMetadataRepository,
)
from coinpeek.notifiers.base import Notifier, NotifierFactory
from coinpeek.rules.types import AlertCondition
from coinpeek.state.app_state import AppState
from coinpeek.state.errors import ErrorKind, ErrorSeverity

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_successful_sync"


class CoinPeekApp:
    """Drives fetching, caching and notifications around an AppState."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        fetcher: Optional[BinanceFetcher] = None,
        notifiers: Optional[list[Notifier]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize CoinPeek app.

        Args:
            config: Loaded configuration
            db: Initialized database
            fetcher: Exchange client, built from config when omitted
            notifiers: Alert notifiers
            clock: Time source shared with the state model
        """
        self.config = config
        self.db = db
        self.clock = clock
        self.fetcher = fetcher or BinanceFetcher(
            base_url=config.api.base_url,
            timeout=config.api.timeout_seconds,
            max_workers=config.api.max_workers,
        )
        self.notifiers = notifiers if notifiers is not None else []

        self.state = AppState(
            alert_cooldown=timedelta(minutes=config.advanced.alert_cooldown_minutes),
            clock=clock,
        )
        # Guards self.state when the poller thread and web handlers share it
        self.lock = threading.RLock()
        # Serializes fetch-and-store passes and the shared SQLite connection.
        # Never acquired while holding self.lock.
        self.sync_lock = threading.Lock()

        # Initialize repositories
        self.price_repo = PriceRepository(db)
        self.candle_repo = CandleRepository(db)
        self.sync_repo = SyncMetadataRepository(db)

        self.refresh_interval = timedelta(seconds=config.refresh_interval_seconds)
        self.last_refresh: Optional[datetime] = None
        self._refresh_requested = False

    def _database_error(self, action: str, error: Exception) -> None:
        logger.error(f"Failed to {action}: {error}")
        with self.lock:
            self.state.report_error(
                ErrorKind.DATABASE,
                ErrorSeverity.WARNING,
                f"Failed to {action}: {error}",
            )

    def seed_alerts(self) -> None:
        """Create the alerts listed in the configuration."""
        with self.lock:
            for entry in self.config.alerts:
                condition = AlertCondition(entry.condition_kind, entry.threshold)
                self.state.create_alert(entry.symbol, condition, entry.message)

    def warm_start(self) -> int:
        """
        Show cached prices before the first fetch.

        Returns:
            Number of cached records loaded
        """
        cached = []
        try:
            with self.sync_lock:
                for symbol in self.config.symbols:
                    record = self.price_repo.load_latest(symbol)
                    if record is not None:
                        cached.append(record)
        except sqlite3.Error as e:
            self._database_error("load cached prices", e)
            return 0

        if cached:
            logger.info(f"Loaded {len(cached)} cached prices")
            with self.lock:
                self.state.replace_all(cached, evaluate_alerts=False)
        return len(cached)

    def refresh(self) -> bool:
        """
        Fetch a new snapshot and apply it.

        Returns:
            True when the fetch succeeded
        """
        with self.sync_lock:
            return self._refresh()

    def _refresh(self) -> bool:
        with self.lock:
            self.last_refresh = self.clock()
        try:
            records = self.fetcher.fetch_snapshot(self.config.symbols)
        except FetchError as e:
            kind = "API" if isinstance(e, ApiError) else "network"
            logger.warning(f"Price refresh failed ({kind}): {e}")
            with self.lock:
                self.state.record_failure()
            return False

        try:
            self.price_repo.store_snapshot(records)
            self.sync_repo.set(LAST_SYNC_KEY, self.clock().isoformat())
        except sqlite3.Error as e:
            self._database_error("store prices", e)

        with self.lock:
            self.state.record_success()
            triggered = self.state.replace_all(records)

        for alert in triggered:
            logger.info(f"Alert {alert.alert_id} triggered: {alert.message}")
            for notifier in self.notifiers:
                result = notifier.send(alert)
                if not result.success:
                    logger.warning(
                        f"Notification via {result.channel} failed: {result.error}"
                    )

        return True

    def _load_candles(self, symbol: str) -> list:
        interval = self.config.chart.interval
        limit = self.config.chart.limit

        try:
            cached = self.candle_repo.load_candles(symbol, interval, limit)
        except sqlite3.Error as e:
            self._database_error("load candles", e)
            cached = []
        if cached:
            return cached

        try:
            candles = self.fetcher.fetch_candles(symbol, interval, limit)
        except FetchError as e:
            logger.warning(f"Candle fetch for {symbol} failed: {e}")
            return []

        try:
            self.candle_repo.store_candles(symbol, interval, candles)
        except sqlite3.Error as e:
            self._database_error("store candles", e)
        return candles

    def refresh_candles(self) -> bool:
        """
        Load chart data for the selected symbol when the cache is stale.

        Returns:
            True when new candles were applied
        """
        with self.lock:
            symbol = self.state.needs_candle_fetch()
        if symbol is None:
            return False

        with self.sync_lock:
            candles = self._load_candles(symbol)
        if not candles:
            return False

        with self.lock:
            return self.state.set_candles(candles, symbol=symbol)

    def refresh_due(self) -> bool:
        with self.lock:
            if self.last_refresh is None:
                return True
            return self.clock() - self.last_refresh >= self.refresh_interval

    def request_refresh(self) -> None:
        """Ask the next tick to refresh, even while paused."""
        with self.lock:
            self._refresh_requested = True

    def tick(self) -> None:
        """One pass of the control loop: scheduled refresh, then candles."""
        with self.lock:
            run = self._refresh_requested or (
                not self.state.paused and self.refresh_due()
            )
            self._refresh_requested = False
        if run:
            self.refresh()
        self.refresh_candles()

    def start(self) -> None:
        """Seed alerts, show cached data and do the first fetch."""
        self.seed_alerts()
        self.warm_start()
        self.refresh()

    def run_poller(self, stop_event: threading.Event, poll_seconds: float = 0.5) -> None:
        """Call tick() until stop_event is set. Used by the web UI."""
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Poller tick failed")
            stop_event.wait(poll_seconds)


def format_table(app: CoinPeekApp) -> str:
    """Plain-text rendering of the visible prices."""
    state = app.state
    visible, total = state.visible_count()
    lines = [
        f"CoinPeek | {visible}/{total} coins | {state.sort_display()} | "
        f"{state.filter_status()} | {state.offline_indicator()}",
    ]
    for record in state.visible_records:
        lines.append(
            f"{record.symbol:<10} ${record.price:>14.2f} "
            f"{record.price_change_percent:>8.2f}% vol {record.volume:,.0f}"
        )
    summary = state.error_summary()
    if summary:
        lines.append(summary)
    return "\n".join(lines)


def setup_logging(level: int, log_file: Optional[str] = None) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=log_file,
    )


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="CoinPeek crypto price dashboard")
    parser.add_argument(
        "--config", default="coinpeek.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--web", action="store_true", help="Serve the browser dashboard")
    mode.add_argument(
        "--once", action="store_true", help="Fetch once and print the price table"
    )

    args = parser.parse_args()

    # Load config
    from coinpeek.config import load_config

    try:
        config = load_config(args.config)
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    # Setup logging; curses owns the terminal in the default mode
    log_level = logging.DEBUG if args.debug else getattr(
        logging, config.advanced.log_level.upper(), logging.INFO
    )
    log_file = None if (args.web or args.once) else config.advanced.log_file
    setup_logging(log_level, log_file)

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    app = CoinPeekApp(
        db=db,
        config=config,
        notifiers=NotifierFactory.from_env(bell=not args.web),
    )

    try:
        if args.once:
            app.start()
            print(format_table(app))
        elif args.web:
            from coinpeek.ui.web import serve

            serve(app)
        else:
            from coinpeek.ui.terminal import run_terminal

            run_terminal(app)
    finally:
        db.close()


if __name__ == "__main__":
    main()

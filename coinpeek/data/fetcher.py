"""
Binance market data fetcher.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.binance.com"


class FetchError(Exception):
    """Raised when market data could not be fetched."""

    pass


class NetworkError(FetchError):
    """Transport-level failure (connection refused, timeout, DNS)."""

    pass


class ApiError(FetchError):
    """The exchange answered with an error or an unexpected payload."""

    pass


@dataclass(frozen=True)
class PriceRecord:
    """Latest 24h ticker snapshot for one symbol."""

    symbol: str
    price: float
    price_change_percent: float
    volume: float
    high_24h: float
    low_24h: float
    prev_close_price: float


@dataclass(frozen=True)
class Candle:
    """One OHLCV candle. Timestamp is the open time in epoch milliseconds."""

    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int


def parse_float(value: Any) -> float:
    """
    Parse an exchange numeric field.

    Unparseable and non-finite values become 0.0 so one bad field does not
    reject the whole record.
    """
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def parse_ticker(data: dict[str, Any]) -> PriceRecord:
    """Build a PriceRecord from a /api/v3/ticker/24hr payload."""
    symbol = data.get("symbol")
    if not symbol:
        raise ApiError(f"Ticker payload without symbol: {data!r}")

    return PriceRecord(
        symbol=symbol,
        price=parse_float(data.get("lastPrice")),
        price_change_percent=parse_float(data.get("priceChangePercent")),
        volume=parse_float(data.get("volume")),
        high_24h=parse_float(data.get("highPrice")),
        low_24h=parse_float(data.get("lowPrice")),
        prev_close_price=parse_float(data.get("prevClosePrice")),
    )


def parse_kline(entry: Any) -> Optional[Candle]:
    """
    Build a Candle from one /api/v3/klines row.

    Returns None for rows that cannot be parsed; callers skip them.
    """
    if not isinstance(entry, (list, tuple)) or len(entry) < 6:
        return None

    timestamp = entry[0]
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        return None

    try:
        values = [float(entry[i]) for i in range(1, 6)]
    except (TypeError, ValueError):
        return None

    open_, high, low, close, volume = values
    return Candle(
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        timestamp=timestamp,
    )


class BinanceFetcher:
    """Fetches ticker and candle data from the Binance public REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        max_workers: int = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_workers = max_workers

    def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if not response.ok:
            raise ApiError(
                f"HTTP {response.status_code} from {path}: {response.text}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}") from e

    def fetch_ticker(self, symbol: str) -> PriceRecord:
        """
        Fetch 24h statistics for a single symbol.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")

        Returns:
            PriceRecord for the symbol

        Raises:
            NetworkError: If the request could not be made
            ApiError: If the exchange returned an error or bad payload
        """
        data = self._get_json("/api/v3/ticker/24hr", {"symbol": symbol})
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected ticker payload for {symbol}")
        return parse_ticker(data)

    def fetch_snapshot(self, symbols: list[str]) -> list[PriceRecord]:
        """
        Fetch tickers for all symbols concurrently.

        Results keep the order of ``symbols``. A symbol that fails is logged
        and left out; the call only raises when every symbol failed.
        """
        if not symbols:
            return []

        workers = max(1, min(self.max_workers, len(symbols)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.fetch_ticker, s) for s in symbols]

            records = []
            errors: list[FetchError] = []
            for symbol, future in zip(symbols, futures):
                try:
                    records.append(future.result())
                except FetchError as e:
                    logger.warning(f"Failed to fetch ticker for {symbol}: {e}")
                    errors.append(e)

        if not records and errors:
            raise errors[0]

        return records

    def fetch_candles(
        self, symbol: str, interval: str = "5m", limit: int = 50
    ) -> list[Candle]:
        """
        Fetch candles for a symbol.

        Args:
            symbol: Trading pair
            interval: Kline interval ("1m", "5m", "1h", ...)
            limit: Number of candles

        Returns:
            Candles in chronological order, malformed rows skipped
        """
        data = self._get_json(
            "/api/v3/klines",
            {"symbol": symbol, "interval": interval, "limit": limit},
        )
        if not isinstance(data, list):
            raise ApiError(f"Unexpected klines payload for {symbol}")

        candles = []
        for entry in data:
            candle = parse_kline(entry)
            if candle is not None:
                candles.append(candle)
        return candles

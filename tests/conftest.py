"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime, timedelta

from coinpeek.data.fetcher import Candle, PriceRecord


def make_record(
    symbol: str,
    price: float = 100.0,
    change: float = 0.0,
    volume: float = 1000.0,
) -> PriceRecord:
    """Build a PriceRecord with sensible 24h fields."""
    return PriceRecord(
        symbol=symbol,
        price=price,
        price_change_percent=change,
        volume=volume,
        high_24h=price * 1.05,
        low_24h=price * 0.95,
        prev_close_price=price / (1 + change / 100) if change > -100 else price,
    )


class FakeClock:
    """Controllable replacement for datetime.now."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_records():
    """Five coins covering gainers, losers, stable and volatile moves."""
    return [
        make_record("BTCUSDT", price=50000.0, change=2.5, volume=1500.0),
        make_record("ETHUSDT", price=3000.0, change=-1.2, volume=800.0),
        make_record("SOLUSDT", price=150.0, change=8.0, volume=2000.0),
        make_record("DOGEUSDT", price=0.08, change=-6.5, volume=500.0),
        make_record("ADAUSDT", price=0.45, change=0.3, volume=100.0),
    ]


@pytest.fixture
def sample_candles():
    return [
        Candle(open=100.0, high=105.0, low=99.0, close=104.0, volume=10.0, timestamp=1_700_000_000_000),
        Candle(open=104.0, high=106.0, low=101.0, close=102.0, volume=12.0, timestamp=1_700_000_300_000),
        Candle(open=102.0, high=110.0, low=102.0, close=109.0, volume=20.0, timestamp=1_700_000_600_000),
    ]


@pytest.fixture
def sample_ticker_payload():
    """Sample Binance /api/v3/ticker/24hr response."""
    return {
        "symbol": "BTCUSDT",
        "priceChange": "1250.50000000",
        "priceChangePercent": "2.567",
        "lastPrice": "50000.12000000",
        "prevClosePrice": "48749.62000000",
        "highPrice": "50500.00000000",
        "lowPrice": "48500.00000000",
        "volume": "12345.67800000",
        "quoteVolume": "617283900.00",
    }


@pytest.fixture
def sample_klines_payload():
    """Sample Binance /api/v3/klines response."""
    return [
        [1_700_000_000_000, "100.0", "105.0", "99.0", "104.0", "10.5", 1_700_000_299_999, "0", 10, "0", "0", "0"],
        [1_700_000_300_000, "104.0", "106.0", "101.0", "102.0", "12.0", 1_700_000_599_999, "0", 12, "0", "0", "0"],
    ]


@pytest.fixture
def sample_discord_webhook_url():
    """Sample Discord webhook URL for testing."""
    return "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"

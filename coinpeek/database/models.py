"""
Data models for the CoinPeek cache database.
"""

from dataclasses import dataclass


@dataclass
class DatabaseStats:
    """Size and row counts of the cache database."""

    price_records: int
    candle_records: int
    database_size_bytes: int

    @property
    def database_size_mb(self) -> float:
        return self.database_size_bytes / (1024 * 1024)

"""
Repository classes for the price cache.
"""

import time
from datetime import timedelta
from typing import Optional

from coinpeek.data.fetcher import Candle, PriceRecord
from .connection import Database


class PriceRepository:
    """Stores and reads ticker snapshots."""

    def __init__(self, db: Database):
        self.db = db

    def store(self, record: PriceRecord, timestamp: Optional[int] = None) -> None:
        """Store a single price record."""
        self.store_snapshot([record], timestamp=timestamp)

    def store_snapshot(
        self, records: list[PriceRecord], timestamp: Optional[int] = None
    ) -> None:
        """
        Store a full snapshot in one transaction.

        Args:
            records: Price records to store
            timestamp: Epoch seconds, defaults to now
        """
        if not records:
            return

        ts = int(time.time()) if timestamp is None else timestamp
        with self.db.connection:
            self.db.connection.executemany(
                """
                INSERT INTO prices (
                    symbol, price, price_change_percent, volume,
                    high_24h, low_24h, prev_close_price, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.symbol,
                        r.price,
                        r.price_change_percent,
                        r.volume,
                        r.high_24h,
                        r.low_24h,
                        r.prev_close_price,
                        ts,
                    )
                    for r in records
                ],
            )

    def load_latest(self, symbol: str) -> Optional[PriceRecord]:
        """Get the most recent record for a symbol."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM prices
            WHERE symbol = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            (symbol,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def active_symbols(self, within: timedelta = timedelta(hours=1)) -> list[str]:
        """Symbols with a snapshot newer than ``within``."""
        cutoff = int(time.time() - within.total_seconds())
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT DISTINCT symbol FROM prices
            WHERE timestamp > ?
            ORDER BY symbol
            """,
            (cutoff,),
        )
        return [row["symbol"] for row in cursor.fetchall()]

    def _row_to_record(self, row) -> PriceRecord:
        """Convert database row to PriceRecord."""
        return PriceRecord(
            symbol=row["symbol"],
            price=row["price"],
            price_change_percent=row["price_change_percent"] or 0.0,
            volume=row["volume"] or 0.0,
            high_24h=row["high_24h"] or 0.0,
            low_24h=row["low_24h"] or 0.0,
            prev_close_price=row["prev_close_price"] or 0.0,
        )


class CandleRepository:
    """Stores and reads candles per symbol and timeframe."""

    def __init__(self, db: Database):
        self.db = db

    def store_candles(self, symbol: str, timeframe: str, candles: list[Candle]) -> None:
        """Store candles in one transaction."""
        if not candles:
            return

        with self.db.connection:
            self.db.connection.executemany(
                """
                INSERT INTO candles (
                    symbol, timeframe, open, high, low, close, volume, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        symbol,
                        timeframe,
                        c.open,
                        c.high,
                        c.low,
                        c.close,
                        c.volume,
                        c.timestamp,
                    )
                    for c in candles
                ],
            )

    def load_candles(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """
        Get the latest candles for a symbol.

        Returns:
            Up to ``limit`` candles, oldest first
        """
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM candles
            WHERE symbol = ? AND timeframe = ?
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (symbol, timeframe, limit),
        )
        candles = [self._row_to_candle(row) for row in cursor.fetchall()]
        candles.reverse()
        return candles

    def _row_to_candle(self, row) -> Candle:
        return Candle(
            open=row["open"],
            high=row["high"],
            low=row["low"],
            close=row["close"],
            volume=row["volume"] or 0.0,
            timestamp=row["timestamp"],
        )


class SyncMetadataRepository:
    """Key/value store for sync bookkeeping."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT value FROM sync_metadata WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            return None
        return row["value"]

    def set(self, key: str, value: str) -> None:
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO sync_metadata (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = strftime('%s', 'now')
            """,
            (key, value),
        )
        self.db.connection.commit()

"""
SQLite database connection and schema management.
"""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional

from .models import DatabaseStats

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        # The web UI reads and writes from the poller thread and request threads.
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        cursor = self.connection.cursor()

        # Latest ticker snapshots, one row per symbol per fetch
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                price REAL NOT NULL,
                price_change_percent REAL,
                volume REAL,
                high_24h REAL,
                low_24h REAL,
                prev_close_price REAL,
                timestamp INTEGER NOT NULL,
                exchange TEXT DEFAULT 'binance',
                created_at INTEGER DEFAULT (strftime('%s', 'now'))
            )
        """)

        # Historical OHLC data
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS candles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                timeframe TEXT NOT NULL,
                open REAL NOT NULL,
                high REAL NOT NULL,
                low REAL NOT NULL,
                close REAL NOT NULL,
                volume REAL,
                timestamp INTEGER NOT NULL,
                exchange TEXT DEFAULT 'binance',
                created_at INTEGER DEFAULT (strftime('%s', 'now'))
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sync_metadata (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at INTEGER DEFAULT (strftime('%s', 'now'))
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prices_symbol_timestamp
            ON prices(symbol, timestamp)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prices_timestamp ON prices(timestamp)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_candles_symbol_timeframe_timestamp
            ON candles(symbol, timeframe, timestamp)
        """)

        self.connection.commit()

    def stats(self) -> DatabaseStats:
        """Row counts and on-disk size."""
        cursor = self.connection.cursor()
        cursor.execute("SELECT COUNT(*) FROM prices")
        price_count = cursor.fetchone()[0]
        cursor.execute("SELECT COUNT(*) FROM candles")
        candle_count = cursor.fetchone()[0]
        cursor.execute(
            "SELECT page_count * page_size FROM pragma_page_count(), pragma_page_size()"
        )
        size = cursor.fetchone()[0]

        return DatabaseStats(
            price_records=price_count,
            candle_records=candle_count,
            database_size_bytes=size,
        )

    def cleanup_old_data(self, price_days: int = 30, candle_days: int = 90) -> int:
        """
        Delete old prices and candles, then vacuum.

        Args:
            price_days: Days of price snapshots to keep
            candle_days: Days of candles to keep

        Returns:
            Number of deleted rows
        """
        now = int(time.time())
        cursor = self.connection.cursor()
        cursor.execute(
            "DELETE FROM prices WHERE timestamp < ?",
            (now - price_days * SECONDS_PER_DAY,),
        )
        deleted = cursor.rowcount
        # Candle timestamps are exchange open times in milliseconds
        cursor.execute(
            "DELETE FROM candles WHERE timestamp < ?",
            ((now - candle_days * SECONDS_PER_DAY) * 1000,),
        )
        deleted += cursor.rowcount
        self.connection.commit()
        self.connection.execute("VACUUM")

        logger.info(f"Removed {deleted} old rows")
        return deleted

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

"""
Database layer tests.
Tests for SQLite connection, schema creation and the cache repositories.
"""

import pytest
import sqlite3
import time
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

from coinpeek.database.connection import Database, SECONDS_PER_DAY
from coinpeek.database.models import DatabaseStats
from coinpeek.database.repository import (
    CandleRepository,
    PriceRepository,
    SyncMetadataRepository,
)
from conftest import make_record


@pytest.fixture
def db():
    """Create in-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


class TestDatabaseConnection:
    """Test database connection and initialization."""

    def test_create_in_memory_database(self):
        """Should create an in-memory SQLite database."""
        db = Database(":memory:")
        assert db.connection is not None

    def test_create_file_database(self, tmp_path: Path):
        """Should create the file and its parent directory."""
        db_path = tmp_path / "cache" / "coinpeek.db"
        db = Database(str(db_path))
        db.initialize()
        assert db_path.exists()
        db.close()

    def test_initialize_schema(self, db):
        """Should create all required tables."""
        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}
        assert {"prices", "candles", "sync_metadata"}.issubset(tables)

    def test_initialize_twice(self, db):
        """Should be safe to run initialize again."""
        db.initialize()

    def test_close_connection(self):
        """Should properly close database connection."""
        db = Database(":memory:")
        db.close()
        with pytest.raises(sqlite3.ProgrammingError):
            db.connection.execute("SELECT 1")

    def test_stats(self, db, sample_records, sample_candles):
        """Should count rows per table."""
        PriceRepository(db).store_snapshot(sample_records)
        CandleRepository(db).store_candles("BTCUSDT", "5m", sample_candles)

        stats = db.stats()
        assert stats.price_records == 5
        assert stats.candle_records == 3
        assert stats.database_size_bytes > 0

    def test_size_mb(self):
        """Should convert bytes to megabytes."""
        stats = DatabaseStats(price_records=0, candle_records=0, database_size_bytes=2 * 1024 * 1024)
        assert stats.database_size_mb == 2.0

    def test_cleanup_old_data(self, db, sample_candles):
        """Should delete prices and candles older than the retention window."""
        now = int(time.time())
        prices = PriceRepository(db)
        prices.store(make_record("OLDUSDT"), timestamp=now - 31 * SECONDS_PER_DAY)
        prices.store(make_record("NEWUSDT"), timestamp=now)

        candles = CandleRepository(db)
        old_candle = sample_candles[0]
        old_ms = (now - 91 * SECONDS_PER_DAY) * 1000
        candles.store_candles("BTCUSDT", "5m", [
            replace(old_candle, timestamp=old_ms),
            replace(old_candle, timestamp=now * 1000),
        ])

        assert db.cleanup_old_data(price_days=30, candle_days=90) == 2
        assert prices.load_latest("OLDUSDT") is None
        assert prices.load_latest("NEWUSDT") is not None
        assert len(candles.load_candles("BTCUSDT", "5m", 10)) == 1


class TestPriceRepository:
    """Test price snapshot storage."""

    @pytest.fixture
    def repo(self, db):
        return PriceRepository(db)

    def test_store_and_load_latest(self, repo, sample_records):
        """Should round-trip a record."""
        repo.store_snapshot(sample_records)
        loaded = repo.load_latest("SOLUSDT")
        assert loaded == sample_records[2]

    def test_load_latest_picks_newest(self, repo):
        """Should return the most recent snapshot for a symbol."""
        repo.store(make_record("BTCUSDT", price=1.0), timestamp=1000)
        repo.store(make_record("BTCUSDT", price=3.0), timestamp=3000)
        repo.store(make_record("BTCUSDT", price=2.0), timestamp=2000)
        assert repo.load_latest("BTCUSDT").price == 3.0

    def test_same_timestamp_uses_insert_order(self, repo):
        """Should break timestamp ties by insertion order."""
        repo.store_snapshot([make_record("BTCUSDT", price=1.0)], timestamp=1000)
        repo.store_snapshot([make_record("BTCUSDT", price=2.0)], timestamp=1000)
        assert repo.load_latest("BTCUSDT").price == 2.0

    def test_load_latest_missing(self, repo):
        """Should return None for unknown symbols."""
        assert repo.load_latest("XRPUSDT") is None

    def test_store_empty_snapshot(self, repo, db):
        """Should do nothing for an empty snapshot."""
        repo.store_snapshot([])
        assert db.stats().price_records == 0

    def test_active_symbols(self, repo):
        """Should list symbols updated within the window."""
        now = int(time.time())
        repo.store(make_record("OLDUSDT"), timestamp=now - 7200)
        repo.store(make_record("ETHUSDT"), timestamp=now)
        repo.store(make_record("BTCUSDT"), timestamp=now)
        assert repo.active_symbols(timedelta(hours=1)) == ["BTCUSDT", "ETHUSDT"]


class TestCandleRepository:
    """Test candle storage."""

    @pytest.fixture
    def repo(self, db):
        return CandleRepository(db)

    def test_store_and_load(self, repo, sample_candles):
        """Should return candles oldest first."""
        repo.store_candles("BTCUSDT", "5m", list(reversed(sample_candles)))
        assert repo.load_candles("BTCUSDT", "5m", 50) == sample_candles

    def test_limit_keeps_newest(self, repo, sample_candles):
        """Should keep the newest candles when limited."""
        repo.store_candles("BTCUSDT", "5m", sample_candles)
        assert repo.load_candles("BTCUSDT", "5m", 2) == sample_candles[1:]

    def test_timeframes_are_separate(self, repo, sample_candles):
        """Should not mix timeframes or symbols."""
        repo.store_candles("BTCUSDT", "5m", sample_candles)
        assert repo.load_candles("BTCUSDT", "1h", 50) == []
        assert repo.load_candles("ETHUSDT", "5m", 50) == []


class TestSyncMetadataRepository:
    """Test key/value metadata."""

    def test_get_set_upsert(self, db):
        """Should insert and overwrite values."""
        repo = SyncMetadataRepository(db)
        assert repo.get("last_successful_sync") is None
        repo.set("last_successful_sync", "a")
        repo.set("last_successful_sync", "b")
        assert repo.get("last_successful_sync") == "b"

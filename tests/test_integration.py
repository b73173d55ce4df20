"""
Integration tests.
End-to-end tests for the refresh loop: fetch, cache, state and notifications.
"""

import io
import threading
import time
import pytest
from unittest.mock import Mock

from coinpeek.config import AlertConfig, AppConfig
from coinpeek.data.fetcher import BinanceFetcher, NetworkError
from coinpeek.database.connection import Database
from coinpeek.database.repository import CandleRepository, PriceRepository
from coinpeek.main import LAST_SYNC_KEY, CoinPeekApp, format_table
from coinpeek.notifiers.bell import BellNotifier
from coinpeek.state.errors import ErrorKind
from conftest import make_record


class TestRefreshFlow:
    """Test the host application around AppState."""

    @pytest.fixture
    def db(self):
        """Create in-memory database with schema."""
        db = Database(":memory:")
        db.initialize()
        yield db
        db.close()

    @pytest.fixture
    def config(self):
        return AppConfig(
            symbols=["BTCUSDT", "ETHUSDT"],
            refresh_interval_seconds=5,
            alerts=[AlertConfig(symbol="BTCUSDT", condition="price_above", threshold=60000.0)],
        )

    @pytest.fixture
    def fetcher(self):
        fetcher = Mock(spec=BinanceFetcher)
        fetcher.fetch_snapshot.return_value = [
            make_record("BTCUSDT", price=50000.0, change=2.0),
            make_record("ETHUSDT", price=3000.0, change=-1.0),
        ]
        fetcher.fetch_candles.return_value = []
        return fetcher

    @pytest.fixture
    def bell_stream(self):
        return io.StringIO()

    @pytest.fixture
    def app(self, config, db, fetcher, clock, bell_stream):
        return CoinPeekApp(
            config=config,
            db=db,
            fetcher=fetcher,
            notifiers=[BellNotifier(stream=bell_stream)],
            clock=clock,
        )

    def test_refresh_success(self, app, db, fetcher):
        """Should store the snapshot and update the state."""
        assert app.refresh() is True

        fetcher.fetch_snapshot.assert_called_once_with(["BTCUSDT", "ETHUSDT"])
        assert [r.symbol for r in app.state.visible_records] == ["BTCUSDT", "ETHUSDT"]
        assert app.state.data_status.last_success is not None
        assert PriceRepository(db).load_latest("ETHUSDT").price == 3000.0
        assert app.sync_repo.get(LAST_SYNC_KEY) is not None

    def test_refresh_failure_keeps_snapshot(self, app, fetcher):
        """Should record failures and keep the last good data."""
        app.refresh()
        fetcher.fetch_snapshot.side_effect = NetworkError("down")

        for _ in range(3):
            assert app.refresh() is False

        assert app.state.data_status.offline is True
        assert len(app.state.all_records) == 2

    def test_offline_survives_success(self, app, fetcher):
        """Should stay offline after a successful refresh."""
        fetcher.fetch_snapshot.side_effect = NetworkError("down")
        for _ in range(3):
            app.refresh()
        fetcher.fetch_snapshot.side_effect = None

        assert app.refresh() is True
        assert app.state.data_status.offline is True
        assert app.state.data_status.consecutive_failures == 0

    def test_alert_rings_bell(self, app, fetcher, bell_stream):
        """Should notify when a seeded alert fires."""
        app.seed_alerts()
        fetcher.fetch_snapshot.return_value = [make_record("BTCUSDT", price=65000.0)]

        app.refresh()

        assert bell_stream.getvalue() == "\a"
        assert app.state.alerts[0].trigger_count == 1
        assert "BTCUSDT price $65000.00 is above $60000.00" in app.state.recent_alerts()[0][0]

    def test_warm_start_uses_cache_without_alerts(self, app, db, bell_stream):
        """Should show cached prices and not fire alerts."""
        PriceRepository(db).store_snapshot([make_record("BTCUSDT", price=70000.0)])
        app.seed_alerts()

        assert app.warm_start() == 1
        assert [r.symbol for r in app.state.all_records] == ["BTCUSDT"]
        assert bell_stream.getvalue() == ""

    def test_store_failure_is_reported(self, app, db):
        """Should turn database errors into error log entries."""
        db.connection.execute("DROP TABLE prices")

        assert app.refresh() is True
        errors = app.state.active_errors()
        assert len(errors) == 1
        assert errors[0].kind is ErrorKind.DATABASE
        assert len(app.state.all_records) == 2

    def test_candles_loaded_from_cache_first(self, app, db, fetcher, sample_candles):
        """Should prefer cached candles over the API."""
        app.refresh()
        CandleRepository(db).store_candles("BTCUSDT", "5m", sample_candles)

        assert app.refresh_candles() is True
        assert app.state.candles == sample_candles
        fetcher.fetch_candles.assert_not_called()
        assert app.refresh_candles() is False

    def test_candles_fetched_and_cached(self, app, db, fetcher, sample_candles):
        """Should fetch from the API and store the result."""
        app.refresh()
        fetcher.fetch_candles.return_value = sample_candles

        assert app.refresh_candles() is True
        fetcher.fetch_candles.assert_called_once_with("BTCUSDT", "5m", 50)
        assert CandleRepository(db).load_candles("BTCUSDT", "5m", 50) == sample_candles

    def test_candles_discarded_when_selection_moves(self, app, fetcher, sample_candles):
        """Should drop candles when the selection changed during the fetch."""
        app.refresh()

        def move_selection(*args):
            app.state.select_next()
            return sample_candles

        fetcher.fetch_candles.side_effect = move_selection
        assert app.refresh_candles() is False
        assert app.state.candles == []

    def test_tick_respects_pause_and_interval(self, app, fetcher, clock):
        """Should refresh on schedule and not while paused."""
        fetcher.fetch_candles.side_effect = NetworkError("no candles")
        app.tick()
        assert fetcher.fetch_snapshot.call_count == 1

        app.tick()
        assert fetcher.fetch_snapshot.call_count == 1

        clock.advance(seconds=5)
        app.state.toggle_pause()
        app.tick()
        assert fetcher.fetch_snapshot.call_count == 1

        app.request_refresh()
        app.tick()
        assert fetcher.fetch_snapshot.call_count == 2

    def test_concurrent_refreshes_do_not_overlap(self, app, fetcher):
        """Should run one fetch-and-store pass at a time across threads."""
        records = fetcher.fetch_snapshot.return_value
        active = []
        overlaps = []
        guard = threading.Lock()

        def slow_fetch(symbols):
            with guard:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(len(active))
            time.sleep(0.05)
            with guard:
                active.pop()
            return records

        fetcher.fetch_snapshot.side_effect = slow_fetch
        threads = [threading.Thread(target=app.refresh) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert fetcher.fetch_snapshot.call_count == 3
        assert overlaps == []
        assert app.state.active_errors() == []

    def test_format_table(self, app):
        """Should render a header and one line per visible record."""
        app.refresh()
        lines = format_table(app).splitlines()
        assert lines[0].startswith("CoinPeek | 2/2 coins | Symbol ↑ | All | 🟢 synced just now")
        assert lines[1].startswith("BTCUSDT")
        assert len(lines) == 3

    def test_cooldown_from_config(self, config, db, fetcher, clock):
        """Should build the alert engine with the configured cooldown."""
        config.advanced.alert_cooldown_minutes = 15
        app = CoinPeekApp(config=config, db=db, fetcher=fetcher, clock=clock)
        assert app.state.alert_engine.cooldown.total_seconds() == 15 * 60

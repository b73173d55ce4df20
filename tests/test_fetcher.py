"""
Data fetcher tests.
Tests for Binance API integration.
"""

import pytest
from unittest.mock import Mock, patch

import requests

from coinpeek.data.fetcher import (
    ApiError,
    BinanceFetcher,
    Candle,
    FetchError,
    NetworkError,
    parse_float,
    parse_kline,
    parse_ticker,
)


def mock_response(payload=None, status_code=200, text=""):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TestParsing:
    """Test payload parsing."""

    def test_parse_float(self):
        """Should parse numbers and default to 0.0."""
        assert parse_float("1.5") == 1.5
        assert parse_float(2) == 2.0
        assert parse_float("abc") == 0.0
        assert parse_float(None) == 0.0
        assert parse_float("nan") == 0.0
        assert parse_float("inf") == 0.0

    def test_parse_ticker(self, sample_ticker_payload):
        """Should map Binance fields onto a PriceRecord."""
        record = parse_ticker(sample_ticker_payload)
        assert record.symbol == "BTCUSDT"
        assert record.price == 50000.12
        assert record.price_change_percent == 2.567
        assert record.volume == 12345.678
        assert record.high_24h == 50500.0
        assert record.low_24h == 48500.0
        assert record.prev_close_price == 48749.62

    def test_parse_ticker_bad_field_defaults(self, sample_ticker_payload):
        """Should keep the record when one field is garbage."""
        sample_ticker_payload["volume"] = "not-a-number"
        record = parse_ticker(sample_ticker_payload)
        assert record.volume == 0.0
        assert record.price == 50000.12

    def test_parse_ticker_requires_symbol(self):
        """Should reject payloads without a symbol."""
        with pytest.raises(ApiError):
            parse_ticker({"lastPrice": "1"})

    def test_parse_kline(self, sample_klines_payload):
        """Should map a kline row onto a Candle."""
        candle = parse_kline(sample_klines_payload[0])
        assert candle == Candle(
            open=100.0, high=105.0, low=99.0, close=104.0, volume=10.5,
            timestamp=1_700_000_000_000,
        )

    @pytest.mark.parametrize(
        "row",
        [
            [1_700_000_000_000, "1"],
            ["1700000000000", "1", "2", "0.5", "1.5", "3"],
            [1_700_000_000_000, "x", "2", "0.5", "1.5", "3"],
            {"open": 1},
        ],
    )
    def test_parse_kline_malformed(self, row):
        """Should return None for rows that cannot be parsed."""
        assert parse_kline(row) is None


class TestBinanceFetcher:
    """Test the REST client."""

    @pytest.fixture
    def fetcher(self):
        return BinanceFetcher(base_url="https://api.test/", timeout=3.0, max_workers=4)

    def test_fetch_ticker(self, fetcher, sample_ticker_payload):
        """Should call the 24hr ticker endpoint."""
        with patch("requests.get", return_value=mock_response(sample_ticker_payload)) as mock_get:
            record = fetcher.fetch_ticker("BTCUSDT")

        assert record.symbol == "BTCUSDT"
        mock_get.assert_called_once_with(
            "https://api.test/api/v3/ticker/24hr",
            params={"symbol": "BTCUSDT"},
            timeout=3.0,
        )

    def test_http_error_raises_api_error(self, fetcher):
        """Should raise ApiError for non-2xx responses."""
        with patch("requests.get", return_value=mock_response(status_code=400, text="bad symbol")):
            with pytest.raises(ApiError, match="HTTP 400"):
                fetcher.fetch_ticker("NOPE")

    def test_invalid_json_raises_api_error(self, fetcher):
        """Should raise ApiError when the body is not JSON."""
        with patch("requests.get", return_value=mock_response(ValueError("no json"))):
            with pytest.raises(ApiError):
                fetcher.fetch_ticker("BTCUSDT")

    def test_connection_error_raises_network_error(self, fetcher):
        """Should raise NetworkError on transport failures."""
        with patch("requests.get", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(NetworkError):
                fetcher.fetch_ticker("BTCUSDT")

    def test_fetch_snapshot_preserves_order(self, fetcher, sample_ticker_payload):
        """Should return records in the requested order."""
        def fake_get(url, params, timeout):
            payload = dict(sample_ticker_payload, symbol=params["symbol"])
            return mock_response(payload)

        with patch("requests.get", side_effect=fake_get):
            records = fetcher.fetch_snapshot(["ETHUSDT", "BTCUSDT", "SOLUSDT"])

        assert [r.symbol for r in records] == ["ETHUSDT", "BTCUSDT", "SOLUSDT"]

    def test_fetch_snapshot_drops_failed_symbols(self, fetcher, sample_ticker_payload):
        """Should leave out symbols that failed."""
        def fake_get(url, params, timeout):
            if params["symbol"] == "BADUSDT":
                return mock_response(status_code=400, text="Invalid symbol")
            return mock_response(dict(sample_ticker_payload, symbol=params["symbol"]))

        with patch("requests.get", side_effect=fake_get):
            records = fetcher.fetch_snapshot(["BTCUSDT", "BADUSDT", "ETHUSDT"])

        assert [r.symbol for r in records] == ["BTCUSDT", "ETHUSDT"]

    def test_fetch_snapshot_all_failed_raises(self, fetcher):
        """Should raise when every symbol failed."""
        with patch("requests.get", side_effect=requests.Timeout("slow")):
            with pytest.raises(FetchError):
                fetcher.fetch_snapshot(["BTCUSDT", "ETHUSDT"])

    def test_fetch_snapshot_empty(self, fetcher):
        """Should not call the API for an empty symbol list."""
        with patch("requests.get") as mock_get:
            assert fetcher.fetch_snapshot([]) == []
        mock_get.assert_not_called()

    def test_fetch_candles(self, fetcher, sample_klines_payload):
        """Should call the klines endpoint and skip bad rows."""
        payload = sample_klines_payload + [["garbage"]]
        with patch("requests.get", return_value=mock_response(payload)) as mock_get:
            candles = fetcher.fetch_candles("BTCUSDT", "1h", 2)

        assert [c.close for c in candles] == [104.0, 102.0]
        mock_get.assert_called_once_with(
            "https://api.test/api/v3/klines",
            params={"symbol": "BTCUSDT", "interval": "1h", "limit": 2},
            timeout=3.0,
        )

    def test_fetch_candles_unexpected_payload(self, fetcher):
        """Should raise ApiError for a non-list payload."""
        with patch("requests.get", return_value=mock_response({"code": -1121})):
            with pytest.raises(ApiError):
                fetcher.fetch_candles("BTCUSDT")

"""Tests for the Yahoo Finance chart adapter."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
from followinvest.errors import ParseError, ProviderUnavailable
from followinvest.market.yahoo import (
    YahooPriceProvider,
    YahooRateProvider,
    _validate_dates,
    fetch_chart,
    pair_symbol,
)

META = {
    "symbol": "VFV.TO",
    "currency": "CAD",
    "exchangeName": "TOR",
    "regularMarketPrice": 140.25,
}


def _frame(rows: dict[str, dict[str, float]]) -> pd.DataFrame:
    """Build a yfinance-style history frame keyed by ISO date."""
    idx = pd.DatetimeIndex(list(rows))
    return pd.DataFrame(list(rows.values()), index=idx)


def _make_mock_ticker(df: pd.DataFrame | None = None, meta=None) -> MagicMock:
    ticker = MagicMock()
    ticker.history.return_value = pd.DataFrame() if df is None else df
    ticker.history_metadata = META if meta is None else meta
    return ticker


def _patch_require(ticker: MagicMock):
    """Patch _require_yfinance to return mocked yfinance + real pandas."""
    yf_mock = MagicMock()
    yf_mock.Ticker.return_value = ticker
    return patch(
        "followinvest.market.yahoo._require_yfinance",
        return_value=(yf_mock, pd),
    )


class TestHelpers:
    """Tests for symbol and date helpers."""

    def test_pair_symbol(self):
        assert pair_symbol("CAD", "USD") == "CADUSD=X"

    def test_same_date(self):
        day = date(2024, 6, 3)
        assert _validate_dates(day, day) == (day, day)

    def test_start_after_end(self):
        with pytest.raises(ValueError, match="must be <="):
            _validate_dates(date(2024, 6, 4), date(2024, 6, 3))


class TestFetchChart:
    """Tests for chart fetching (mocked)."""

    def test_empty_symbol_raises(self):
        with pytest.raises(ValueError, match="non-empty"):
            fetch_chart("  ")

    def test_parses_bars_and_meta(self):
        df = _frame(
            {
                "2024-05-31": {
                    "Open": 139.0, "High": 141.0, "Low": 138.5,
                    "Close": 140.0, "Volume": 120000,
                },
                "2024-06-03": {
                    "Open": 140.0, "High": 141.5, "Low": 139.5,
                    "Close": 140.25, "Volume": 98000,
                },
            }
        )
        ticker = _make_mock_ticker(df)

        with _patch_require(ticker):
            chart = fetch_chart("vfv.to", date(2024, 5, 31), date(2024, 6, 3))

        assert chart.meta.currency == "CAD"
        assert chart.meta.exchange_name == "TOR"
        assert chart.meta.regular_market_price == Decimal("140.25")
        dates = [b.price_date for b in chart.bars]
        assert dates == [date(2024, 5, 31), date(2024, 6, 3)]
        assert chart.bars[0].symbol == "VFV.TO"
        assert chart.bars[1].close == Decimal("140.25")
        assert chart.bars[1].volume == 98000
        assert chart.bars[1].currency == "CAD"

    def test_end_is_exclusive_upstream(self):
        ticker = _make_mock_ticker()
        with _patch_require(ticker):
            fetch_chart("VFV.TO", date(2024, 6, 3), date(2024, 6, 3), timeout=4.0)

        kwargs = ticker.history.call_args.kwargs
        assert kwargs["start"] == "2024-06-03"
        assert kwargs["end"] == "2024-06-04"
        assert kwargs["timeout"] == 4.0
        assert kwargs["raise_errors"] is True

    def test_no_start_requests_latest_session(self):
        ticker = _make_mock_ticker()
        with _patch_require(ticker):
            fetch_chart("CADUSD=X")
        assert ticker.history.call_args.kwargs["period"] == "1d"

    def test_empty_frame_returns_meta_only(self):
        ticker = _make_mock_ticker()
        with _patch_require(ticker):
            chart = fetch_chart("VFV.TO", date(2024, 6, 1), date(2024, 6, 2))
        assert chart.bars == []
        assert chart.meta.symbol == "VFV.TO"

    def test_rows_without_close_skipped(self):
        df = _frame(
            {
                "2024-06-03": {
                    "Open": float("nan"), "High": float("nan"), "Low": float("nan"),
                    "Close": float("nan"), "Volume": float("nan"),
                },
            }
        )
        with _patch_require(_make_mock_ticker(df)):
            chart = fetch_chart("VFV.TO", date(2024, 6, 3))
        assert chart.bars == []

    def test_invalid_bars_dropped(self):
        df = _frame(
            {
                "2024-05-31": {
                    "Open": 10.0, "High": 9.0, "Low": 11.0,
                    "Close": 10.0, "Volume": 100,
                },
                "2024-06-03": {
                    "Open": 10.0, "High": 11.0, "Low": 9.0,
                    "Close": 10.5, "Volume": 100,
                },
            }
        )
        with _patch_require(_make_mock_ticker(df)):
            chart = fetch_chart("VFV.TO", date(2024, 5, 31), date(2024, 6, 3))
        assert [b.price_date for b in chart.bars] == [date(2024, 6, 3)]

    def test_library_error_is_unavailable(self):
        ticker = _make_mock_ticker()
        ticker.history.side_effect = RuntimeError("429 Too Many Requests")
        with _patch_require(ticker), pytest.raises(ProviderUnavailable, match="429"):
            fetch_chart("VFV.TO")

    def test_metadata_not_object(self):
        ticker = _make_mock_ticker(meta=["bad"])
        with _patch_require(ticker), pytest.raises(ParseError, match="not an object"):
            fetch_chart("VFV.TO")


class TestYahooRateProvider:
    """Tests for the secondary rate provider."""

    def test_rate_from_regular_market_price(self):
        ticker = _make_mock_ticker(
            meta={"symbol": "CADUSD=X", "regularMarketPrice": 0.7301}
        )
        with _patch_require(ticker) as require:
            rate = YahooRateProvider().fetch_rate("CAD", "USD")
        assert rate == Decimal("0.7301")
        require.return_value[0].Ticker.assert_called_once_with("CADUSD=X")

    def test_missing_price(self):
        ticker = _make_mock_ticker(meta={"symbol": "CADUSD=X"})
        with (
            _patch_require(ticker),
            pytest.raises(ParseError, match="regularMarketPrice"),
        ):
            YahooRateProvider().fetch_rate("CAD", "USD")

    def test_non_positive_price(self):
        ticker = _make_mock_ticker(meta={"regularMarketPrice": 0})
        with _patch_require(ticker), pytest.raises(ParseError, match="non-positive"):
            YahooRateProvider().fetch_rate("CAD", "USD")


class TestYahooPriceProvider:
    """Tests for the price provider."""

    def test_returns_bars(self):
        df = _frame(
            {
                "2024-06-03": {
                    "Open": 10.0, "High": 11.0, "Low": 9.0,
                    "Close": 10.5, "Volume": 100,
                },
            }
        )
        with _patch_require(_make_mock_ticker(df)):
            bars = YahooPriceProvider().fetch_prices(
                "VFV.TO", date(2024, 6, 3), date(2024, 6, 3)
            )
        assert len(bars) == 1
        assert bars[0].close == Decimal("10.5")

"""Tests for the sidecar entry point (dispatch and message loop)."""

from __future__ import annotations

import json
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

import pytest
from followinvest.config import Settings
from followinvest.errors import ProviderUnavailable
from followinvest.main import dispatch, main, serve
from followinvest.market.base import PriceProvider, RateProvider
from followinvest.models import SecurityPrice
from followinvest.service import MarketDataService

HOLDING = {
    "id": 1,
    "name": "VFV - S&P 500 ETF",
    "quantity": "10",
    "purchase_value": "5",
    "currency": "CAD",
    "category": "ETF",
}

ACCOUNT = {"id": 1, "name": "TFSA", "sort_order": 0, "holdings": [HOLDING]}


@pytest.fixture
def service(db) -> MarketDataService:
    rates = MagicMock(spec=RateProvider)
    rates.name = "fake-rates"
    rates.fetch_rate.return_value = Decimal("0.5")

    prices = MagicMock(spec=PriceProvider)
    prices.name = "fake-prices"
    prices.fetch_prices.side_effect = lambda symbol, start, end: [
        SecurityPrice(symbol=symbol, price_date=end, close=Decimal("7"))
    ]
    settings = Settings(tracked_pairs=(("CAD", "USD"),))
    return MarketDataService(db, [rates], prices, settings)


def _roundtrip(service: MarketDataService, *requests: dict) -> list[dict]:
    stdin = StringIO("".join(json.dumps(r) + "\n" for r in requests))
    stdout = StringIO()
    with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
        serve(service)
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


class TestDispatch:
    """Tests for the dispatch function."""

    def test_unknown_method_raises(self, service):
        with pytest.raises(ValueError, match=r"Unknown method: foo\.bar"):
            dispatch(service, "foo.bar", {})

    def test_currency_rate(self, service):
        result = dispatch(
            service, "currency.rate", {"from_currency": "CAD", "to_currency": "USD"}
        )
        assert result["rate"] == Decimal("0.5")
        assert result["source"] == "provider"

    def test_currency_convert(self, service):
        result = dispatch(
            service,
            "currency.convert",
            {"amount": "100", "from_currency": "cad", "to_currency": "usd"},
        )
        assert result["converted_amount"] == Decimal(50)
        assert result["to_currency"] == "USD"

    def test_currency_rates_and_update(self, service):
        report = dispatch(service, "currency.update_rates", {})
        assert report == {"updated": ["CADUSD"], "failed": []}
        assert dispatch(service, "currency.rates", {}) == {"CADUSD": Decimal("0.5")}

    def test_currency_portfolio(self, service):
        result = dispatch(
            service,
            "currency.portfolio",
            {"holdings": [HOLDING], "target_currency": "USD"},
        )
        assert result["total_value"] == Decimal(25)

    def test_prices_current(self, service):
        result = dispatch(service, "prices.current", {"holding": HOLDING})
        assert result["symbol"] == "VFV.TO"
        assert result["status"] == "fetched"

    def test_prices_series_symbols_delete(self, service):
        series = dispatch(
            service,
            "prices.series",
            {"symbol": "VFV.TO", "start_date": "2024-05-01", "end_date": "2024-05-31"},
        )
        assert len(series) == 1
        assert dispatch(service, "prices.symbols", {}) == ["VFV.TO"]
        deleted = dispatch(service, "prices.delete", {"symbol": "VFV.TO"})
        assert deleted == {"symbol": "VFV.TO", "deleted": 1}

    def test_symbols_map(self, service):
        result = dispatch(service, "symbols.map", {"name": "PETR4", "currency": "BRL"})
        assert result["symbol"] == "PETR4.SA"

    def test_performance_methods(self, service):
        holdings = dispatch(service, "performance.holdings", {"holdings": [HOLDING]})
        assert holdings[0]["gain_loss"] == Decimal(20)

        account = dispatch(service, "performance.account", {"account": ACCOUNT})
        assert account["total_invested"] == Decimal(50)

        accounts = dispatch(service, "performance.accounts", {"accounts": [ACCOUNT]})
        assert accounts[0]["account_name"] == "TFSA"

    def test_dashboard_get_and_invalidate(self, service):
        view = dispatch(service, "dashboard.get", {"scope": 7, "accounts": [ACCOUNT]})
        assert view["assets_by_category"][0]["percentage"] == "100.00"
        assert "dashboard:7" in service.cache

        dispatch(service, "dashboard.invalidate", {"scope": 7})
        assert "dashboard:7" not in service.cache


class TestServe:
    """Tests for the stdin/stdout message loop."""

    def test_result_serialized(self, service):
        [response] = _roundtrip(
            service,
            {
                "id": "1",
                "method": "currency.rate",
                "params": {"from_currency": "CAD", "to_currency": "USD"},
            },
        )
        assert response["id"] == "1"
        assert response["result"]["rate"] == "0.50000000"

    def test_invalid_json_returns_error(self, service):
        stdin = StringIO("not valid json\n")
        stdout = StringIO()
        with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
            serve(service)

        response = json.loads(stdout.getvalue().strip())
        assert response["id"] == "unknown"
        assert response["error"]["type"] == "JSONDecodeError"

    def test_missing_method_returns_error(self, service):
        [response] = _roundtrip(service, {"id": "2"})
        assert response["id"] == "2"
        assert "error" in response

    def test_conversion_failure_reported(self, service):
        service.rates.providers[0].fetch_rate.side_effect = ProviderUnavailable(
            "fake-rates", "BRLUSD", "down"
        )
        [response] = _roundtrip(
            service,
            {
                "id": "3",
                "method": "currency.convert",
                "params": {"amount": 1, "from_currency": "BRL", "to_currency": "USD"},
            },
        )
        assert response["error"]["type"] == "NoRateAvailable"
        assert "BRL to USD" in response["error"]["message"]

    def test_empty_lines_are_skipped(self, service):
        request = json.dumps({"id": "4", "method": "prices.symbols"})
        stdin = StringIO("\n\n" + request + "\n\n")
        stdout = StringIO()
        with patch("sys.stdin", stdin), patch("sys.stdout", stdout):
            serve(service)

        lines = stdout.getvalue().strip().split("\n")
        assert len(lines) == 1
        assert json.loads(lines[0]) == {"id": "4", "result": []}


class TestMain:
    """Tests for process startup and shutdown."""

    def test_starts_refresher_and_closes_service(self):
        service = MagicMock()
        with (
            patch("followinvest.main.Settings.from_env", return_value=Settings()),
            patch("followinvest.main.log_config.setup") as setup,
            patch(
                "followinvest.main.MarketDataService.from_settings",
                return_value=service,
            ),
            patch("followinvest.main.serve") as serve_mock,
        ):
            main()

        setup.assert_called_once_with(verbose=False)
        service.refresher.start.assert_called_once()
        serve_mock.assert_called_once_with(service)
        service.close.assert_called_once()

    def test_closes_service_when_loop_fails(self):
        service = MagicMock()
        with (
            patch("followinvest.main.Settings.from_env", return_value=Settings()),
            patch("followinvest.main.log_config.setup"),
            patch(
                "followinvest.main.MarketDataService.from_settings",
                return_value=service,
            ),
            patch("followinvest.main.serve", side_effect=KeyboardInterrupt),
            pytest.raises(KeyboardInterrupt),
        ):
            main()

        service.close.assert_called_once()

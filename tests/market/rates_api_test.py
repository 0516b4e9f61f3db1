"""Tests for the base-currency rate table adapter."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests
from followinvest.errors import ParseError, ProviderUnavailable
from followinvest.market.rates_api import RatesApiProvider, parse_rate_table

URL = "https://rates.example.test/latest"


def _response(payload=None, *, ok=True, status=200, reason="OK", json_error=False):
    response = MagicMock()
    response.ok = ok
    response.status_code = status
    response.reason = reason
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


def _provider(response=None, side_effect=None) -> tuple[RatesApiProvider, MagicMock]:
    session = MagicMock()
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = response
    return RatesApiProvider(URL, timeout=3.0, session=session), session


class TestParseRateTable:
    """Tests for payload parsing."""

    def test_parses_rates_as_decimal(self):
        payload = {"base": "CAD", "date": "2024-06-14", "rates": {"USD": 0.7277}}
        assert parse_rate_table(payload, "CAD") == {"USD": Decimal("0.7277")}

    def test_not_an_object(self):
        with pytest.raises(ParseError, match="not a JSON object"):
            parse_rate_table(["USD"], "CAD")

    def test_wrong_base(self):
        with pytest.raises(ParseError, match="base 'EUR'"):
            parse_rate_table({"base": "EUR", "rates": {}}, "CAD")

    def test_missing_rates(self):
        with pytest.raises(ParseError, match="missing 'rates'"):
            parse_rate_table({"base": "CAD"}, "CAD")

    def test_non_numeric_rate(self):
        with pytest.raises(ParseError, match="not numeric"):
            parse_rate_table({"rates": {"USD": "abc"}}, "CAD")

    def test_non_finite_rate(self):
        with pytest.raises(ParseError, match="not finite"):
            parse_rate_table({"rates": {"USD": "NaN"}}, "CAD")


class TestRatesApiProvider:
    """Tests for the HTTP adapter (mocked session)."""

    def test_fetch_rate(self):
        payload = {"base": "CAD", "rates": {"USD": 0.73, "BRL": 3.9}}
        provider, session = _provider(_response(payload))

        assert provider.fetch_rate("CAD", "USD") == Decimal("0.73")
        session.get.assert_called_once_with(URL, params={"from": "CAD"}, timeout=3.0)

    def test_transport_error_is_unavailable(self):
        provider, _ = _provider(side_effect=requests.ConnectionError("refused"))
        with pytest.raises(ProviderUnavailable, match="refused"):
            provider.fetch_rate("CAD", "USD")

    def test_timeout_is_unavailable(self):
        provider, _ = _provider(side_effect=requests.Timeout("timed out"))
        with pytest.raises(ProviderUnavailable):
            provider.fetch_rate("CAD", "USD")

    def test_non_success_status(self):
        provider, _ = _provider(
            _response(ok=False, status=503, reason="Service Unavailable")
        )
        with pytest.raises(ProviderUnavailable) as exc_info:
            provider.fetch_rate("CAD", "USD")
        assert exc_info.value.status == 503
        assert exc_info.value.provider == "rates-api"

    def test_body_not_json(self):
        provider, _ = _provider(_response(json_error=True))
        with pytest.raises(ParseError, match="not JSON"):
            provider.fetch_rate("CAD", "USD")

    def test_target_missing_from_table(self):
        provider, _ = _provider(_response({"base": "CAD", "rates": {"EUR": 0.67}}))
        with pytest.raises(ParseError, match="no USD"):
            provider.fetch_rate("CAD", "USD")

    def test_non_positive_rate(self):
        provider, _ = _provider(_response({"base": "CAD", "rates": {"USD": 0}}))
        with pytest.raises(ParseError, match="non-positive"):
            provider.fetch_rate("CAD", "USD")

    def test_close_closes_session(self):
        provider, session = _provider(_response({}))
        provider.close()
        session.close.assert_called_once()

"""Base-currency rate table adapter (primary exchange-rate provider).

Fetches the latest rate table for a base currency from a
Frankfurter-compatible endpoint::

    GET https://api.frankfurter.app/latest?from=CAD
    {"amount": 1.0, "base": "CAD", "date": "2024-06-14",
     "rates": {"BRL": 3.93, "USD": 0.7277, ...}}

Note:
    The endpoint is keyless and publishes once per business day, so a
    24-hour cache in front of it loses nothing.

"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from followinvest.config import DEFAULT_RATES_API_URL
from followinvest.errors import ParseError, ProviderUnavailable
from followinvest.market.base import RateProvider

logger = logging.getLogger(__name__)


def parse_rate_table(
    payload: Any,
    base_currency: str,
    provider: str = "rates-api",
) -> dict[str, Decimal]:
    """Extract the ``rates`` mapping from a rate-table payload.

    Args:
        payload: Decoded JSON body.
        base_currency: Base currency the table was requested for.
        provider: Provider name used in error messages.

    Returns:
        Dict mapping currency code to rate (Decimal).

    Raises:
        ParseError: If the payload is not a table for ``base_currency``.

    """
    if not isinstance(payload, dict):
        raise ParseError(provider, base_currency, "payload is not a JSON object")

    base = payload.get("base")
    if base is not None and str(base).upper() != base_currency:
        raise ParseError(provider, base_currency, f"table is for base '{base}'")

    raw_rates = payload.get("rates")
    if not isinstance(raw_rates, dict):
        raise ParseError(provider, base_currency, "missing 'rates' object")

    rates: dict[str, Decimal] = {}
    for code, value in raw_rates.items():
        try:
            rate = Decimal(str(value))
        except InvalidOperation as exc:
            msg = f"rate for {code} is not numeric: {value!r}"
            raise ParseError(provider, base_currency, msg) from exc
        if not rate.is_finite():
            msg = f"rate for {code} is not finite: {value!r}"
            raise ParseError(provider, base_currency, msg)
        rates[str(code).upper()] = rate
    return rates


class RatesApiProvider(RateProvider):
    """Primary rate provider: one GET per base currency."""

    name = "rates-api"

    def __init__(
        self,
        base_url: str = DEFAULT_RATES_API_URL,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")

    def fetch_table(self, base_currency: str) -> dict[str, Decimal]:
        """Fetch the full rate table for a base currency.

        Raises:
            ProviderUnavailable: On transport errors, timeouts, or a
                non-success status.
            ParseError: If the body is not a valid rate table.

        """
        try:
            response = self.session.get(
                self.base_url,
                params={"from": base_currency},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnavailable(self.name, base_currency, str(exc)) from exc

        if not response.ok:
            raise ProviderUnavailable(
                self.name,
                base_currency,
                response.reason or "non-success status",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(self.name, base_currency, "body is not JSON") from exc

        rates = parse_rate_table(payload, base_currency, self.name)
        logger.info(
            "Fetched %d rates for base %s (date %s)",
            len(rates),
            base_currency,
            payload.get("date", "unknown"),
        )
        return rates

    def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        pair = f"{from_currency}{to_currency}"
        rates = self.fetch_table(from_currency)
        rate = rates.get(to_currency)
        if rate is None:
            raise ParseError(self.name, pair, f"no {to_currency} in rate table")
        if rate <= 0:
            raise ParseError(self.name, pair, f"non-positive rate {rate}")
        return rate

    def close(self) -> None:
        self.session.close()

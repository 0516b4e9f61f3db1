"""FollowInvest market-data sidecar entry point.

Communicates with the host application via stdin/stdout using
newline-delimited JSON messages. Holdings and accounts are owned by the
host and passed in with each request.

Protocol:
    Request:  {"id": "uuid", "method": "string", "params": {}}
    Response: {"id": "uuid", "result": {}}
    Error:    {"id": "uuid", "error": {"message": "string", "type": "string"}}

Decimal amounts are returned as strings, dates as ISO-8601.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from collections.abc import Callable
from datetime import date
from typing import Any

from followinvest import log_config
from followinvest.config import Settings
from followinvest.models import Account, Holding, to_decimal
from followinvest.portfolio.conversion import convert_portfolio
from followinvest.serialization import dumps
from followinvest.service import MarketDataService

logger = logging.getLogger(__name__)


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _holdings(items: list[dict[str, Any]]) -> list[Holding]:
    return [Holding.from_dict(item) for item in items]


def _accounts(items: list[dict[str, Any]]) -> list[Account]:
    return [Account.from_dict(item) for item in items]


def _build_handlers(service: MarketDataService) -> dict[str, Callable[..., Any]]:
    rates = service.rates
    prices = service.prices
    calculator = service.calculator

    def currency_rate(
        from_currency: str, to_currency: str, force_refresh: bool = False
    ) -> dict[str, Any]:
        return rates.get_rate(
            from_currency, to_currency, force_refresh=force_refresh
        ).to_dict()

    def currency_convert(
        amount: str | float, from_currency: str, to_currency: str
    ) -> dict[str, Any]:
        value = to_decimal(amount)
        return {
            "amount": value,
            "from_currency": from_currency.upper(),
            "to_currency": to_currency.upper(),
            "converted_amount": rates.convert(value, from_currency, to_currency),
        }

    def currency_portfolio(
        holdings: list[dict[str, Any]], target_currency: str
    ) -> dict[str, Any]:
        return convert_portfolio(_holdings(holdings), target_currency, rates).to_dict()

    def prices_series(
        symbol: str,
        start_date: str | None = None,
        end_date: str | None = None,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        bars = prices.get_price_series(
            symbol,
            _parse_date(start_date),
            _parse_date(end_date),
            force_refresh=force_refresh,
        )
        return [bar.to_dict() for bar in bars]

    def prices_delete(symbol: str, price_date: str | None = None) -> dict[str, Any]:
        deleted = service.price_store.delete(symbol, _parse_date(price_date))
        return {"symbol": symbol.upper(), "deleted": deleted}

    def symbols_map(name: str, currency: str) -> dict[str, Any]:
        return {
            "name": name,
            "currency": currency,
            "symbol": service.mapper.map_to_symbol(name, currency),
        }

    def performance_holdings(holdings: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [p.to_dict() for p in calculator.calculate(_holdings(holdings))]

    def performance_account(account: dict[str, Any]) -> dict[str, Any]:
        return calculator.account_performance(Account.from_dict(account)).to_dict()

    def performance_accounts(
        accounts: list[dict[str, Any]], scope: str | int | None = None
    ) -> Any:
        parsed = _accounts(accounts)
        if scope is None:
            return [p.to_dict() for p in calculator.all_accounts_performance(parsed)]
        return service.accounts_performance(scope, parsed)

    def dashboard_get(scope: str | int, accounts: list[dict[str, Any]]) -> Any:
        return service.dashboard(scope, _accounts(accounts))

    def dashboard_invalidate(scope: str | int) -> dict[str, Any]:
        service.cache.invalidate_scope(scope)
        return {"scope": scope, "invalidated": True}

    return {
        # Currency
        "currency.rate": currency_rate,
        "currency.rates": rates.current_rates,
        "currency.convert": currency_convert,
        "currency.update_rates": lambda: service.refresh_rates().to_dict(),
        "currency.portfolio": currency_portfolio,
        # Prices
        "prices.current": lambda holding: prices.get_current_price(
            Holding.from_dict(holding)
        ).to_dict(),
        "prices.series": prices_series,
        "prices.symbols": service.price_store.symbols,
        "prices.delete": prices_delete,
        "symbols.map": symbols_map,
        # Performance
        "performance.holdings": performance_holdings,
        "performance.account": performance_account,
        "performance.accounts": performance_accounts,
        # Dashboard
        "dashboard.get": dashboard_get,
        "dashboard.invalidate": dashboard_invalidate,
    }


def dispatch(service: MarketDataService, method: str, params: dict[str, Any]) -> Any:
    """Route a method call to the appropriate handler.

    Args:
        service: Market-data components for this process.
        method: The method name (e.g., "currency.rate").
        params: The parameters for the method.

    Returns:
        The result of the method call.

    Raises:
        ValueError: If the method is not recognized.

    """
    handlers = _build_handlers(service)
    if method not in handlers:
        msg = f"Unknown method: {method}"
        raise ValueError(msg)
    return handlers[method](**params)


def serve(service: MarketDataService) -> None:
    """Run the sidecar message loop until stdin is closed.

    Reads newline-delimited JSON from stdin, dispatches to handlers,
    and writes JSON responses to stdout.
    """
    for raw_line in sys.stdin:
        stripped = raw_line.strip()
        if not stripped:
            continue

        request: dict[str, Any] = {}
        try:
            request = json.loads(stripped)
            request_id = request.get("id", "unknown")
            method = request["method"]
            params = request.get("params", {})
            result = dispatch(service, method, params)
            response: dict[str, Any] = {"id": request_id, "result": result}
        except Exception as exc:  # noqa: BLE001 - every error goes back as JSON
            request_id = (
                request.get("id", "unknown") if isinstance(request, dict) else "unknown"
            )
            logger.debug("Request %s failed", request_id, exc_info=True)
            response = {
                "id": request_id,
                "error": {
                    "message": str(exc),
                    "type": type(exc).__name__,
                    "traceback": traceback.format_exc(),
                },
            }
        sys.stdout.write(dumps(response) + "\n")
        sys.stdout.flush()


def main() -> None:
    """Configure logging, start the refresher and serve requests."""
    settings = Settings.from_env()
    log_config.setup(verbose=settings.verbose)
    service = MarketDataService.from_settings(settings)
    service.refresher.start()
    try:
        serve(service)
    finally:
        service.close()


if __name__ == "__main__":
    main()

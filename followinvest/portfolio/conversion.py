"""Express a whole portfolio in one currency.

Conversion is all-or-nothing: if any holding's currency can't be
converted, ``NoRateAvailable`` propagates rather than producing a total
that silently mixes units.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from followinvest.models import Holding, normalize_currency
from followinvest.resolvers.exchange_rates import ExchangeRateResolver


@dataclass(frozen=True)
class ConvertedHolding:
    """One holding's invested total in its own and the target currency."""

    holding_id: int
    name: str
    account_name: str
    quantity: Decimal
    original_value: Decimal
    original_currency: str
    converted_value: Decimal
    target_currency: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "holding_id": self.holding_id,
            "name": self.name,
            "account_name": self.account_name,
            "quantity": self.quantity,
            "original_value": self.original_value,
            "original_currency": self.original_currency,
            "converted_value": self.converted_value,
            "target_currency": self.target_currency,
        }


@dataclass(frozen=True)
class ConvertedPortfolio:
    """All holdings converted into ``target_currency``."""

    target_currency: str
    total_value: Decimal
    conversion_timestamp: datetime
    holdings: list[ConvertedHolding] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_currency": self.target_currency,
            "total_value": self.total_value,
            "conversion_timestamp": self.conversion_timestamp,
            "holdings": [h.to_dict() for h in self.holdings],
        }


def convert_portfolio(
    holdings: Iterable[Holding],
    target_currency: str,
    rates: ExchangeRateResolver,
) -> ConvertedPortfolio:
    """Convert each holding's invested total into ``target_currency``.

    Args:
        holdings: Positions to convert.
        target_currency: Currency to express the portfolio in.
        rates: Resolver used for every conversion.

    Returns:
        ConvertedPortfolio with per-holding values and the grand total.

    Raises:
        NoRateAvailable: If any holding's currency cannot be converted.
        ValueError: If ``target_currency`` is malformed.

    """
    target = normalize_currency(target_currency)
    converted: list[ConvertedHolding] = []
    total = Decimal(0)

    for holding in holdings:
        value = rates.convert(holding.total, holding.currency, target)
        converted.append(
            ConvertedHolding(
                holding_id=holding.id,
                name=holding.name,
                account_name=holding.account_name,
                quantity=holding.quantity,
                original_value=holding.total,
                original_currency=holding.currency,
                converted_value=value,
                target_currency=target,
            )
        )
        total += value

    return ConvertedPortfolio(
        target_currency=target,
        total_value=total,
        conversion_timestamp=rates.clock(),
        holdings=converted,
    )

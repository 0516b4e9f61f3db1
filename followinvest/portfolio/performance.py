"""Gain/loss computation engine.

Combines holdings with resolved current prices. A holding without a
price is valued at what was invested (no change assumed), never at
zero, so one missing quote can't sink an account's totals.

"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from followinvest.models import Account, Holding, utcnow
from followinvest.resolvers.prices import PriceResolver, PriceResult, PriceStatus

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)


def gain_loss_percentage(gain_loss: Decimal, total_invested: Decimal) -> Decimal:
    """Percentage gain relative to the amount invested; 0 when nothing was invested."""
    if total_invested > 0:
        return gain_loss / total_invested * _HUNDRED
    return _ZERO


@dataclass(frozen=True)
class HoldingPerformance:
    """Point-in-time performance of one holding.

    Attributes:
        holding_id: Holding identifier.
        name: Holding name as recorded.
        symbol: Mapped ticker, if any.
        category: Category value.
        currency: Holding currency.
        quantity: Units held.
        purchase_price: Unit purchase value.
        current_price: Resolved price, or None.
        price_status: Why the price is or isn't present.
        total_invested: quantity * purchase_price.
        current_value: quantity * current_price, or total_invested.
        gain_loss: current_value - total_invested.
        gain_loss_percentage: gain_loss / total_invested * 100, zero-guarded.
        last_updated: When this snapshot was computed (naive UTC).

    """

    holding_id: int
    name: str
    symbol: str | None
    category: str
    currency: str
    quantity: Decimal
    purchase_price: Decimal
    current_price: Decimal | None
    price_status: PriceStatus
    total_invested: Decimal
    current_value: Decimal
    gain_loss: Decimal
    gain_loss_percentage: Decimal
    last_updated: datetime

    @property
    def has_current_price(self) -> bool:
        return self.current_price is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "holding_id": self.holding_id,
            "name": self.name,
            "symbol": self.symbol,
            "category": self.category,
            "currency": self.currency,
            "quantity": self.quantity,
            "purchase_price": self.purchase_price,
            "current_price": self.current_price,
            "has_current_price": self.has_current_price,
            "price_status": self.price_status.value,
            "total_invested": self.total_invested,
            "current_value": self.current_value,
            "gain_loss": self.gain_loss,
            "gain_loss_percentage": self.gain_loss_percentage,
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True)
class AccountPerformance:
    """Aggregated performance of an account's holdings."""

    account_id: int
    account_name: str
    holdings: list[HoldingPerformance] = field(default_factory=list)
    total_invested: Decimal = _ZERO
    current_value: Decimal = _ZERO
    total_gain_loss: Decimal = _ZERO
    total_gain_loss_percentage: Decimal = _ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "holdings": [h.to_dict() for h in self.holdings],
            "total_invested": self.total_invested,
            "current_value": self.current_value,
            "total_gain_loss": self.total_gain_loss,
            "total_gain_loss_percentage": self.total_gain_loss_percentage,
        }


def compute_holding_performance(
    holding: Holding,
    price: PriceResult,
    as_of: datetime,
) -> HoldingPerformance:
    """Compute gain/loss for one holding given its price lookup.

    Args:
        holding: The position.
        price: Result of the price lookup for the position.
        as_of: Timestamp recorded on the snapshot.

    Returns:
        HoldingPerformance for the position.

    """
    total_invested = holding.quantity * holding.purchase_value
    if price.price is not None:
        current_value = holding.quantity * price.price
    else:
        current_value = total_invested
    gain_loss = current_value - total_invested

    return HoldingPerformance(
        holding_id=holding.id,
        name=holding.name,
        symbol=price.symbol,
        category=holding.category.value,
        currency=holding.currency,
        quantity=holding.quantity,
        purchase_price=holding.purchase_value,
        current_price=price.price,
        price_status=price.status,
        total_invested=total_invested,
        current_value=current_value,
        gain_loss=gain_loss,
        gain_loss_percentage=gain_loss_percentage(gain_loss, total_invested),
        last_updated=as_of,
    )


def aggregate_account(
    account_id: int,
    account_name: str,
    holdings: list[HoldingPerformance],
) -> AccountPerformance:
    """Sum holding performances into an account total."""
    total_invested = sum((h.total_invested for h in holdings), _ZERO)
    current_value = sum((h.current_value for h in holdings), _ZERO)
    total_gain_loss = sum((h.gain_loss for h in holdings), _ZERO)
    return AccountPerformance(
        account_id=account_id,
        account_name=account_name,
        holdings=holdings,
        total_invested=total_invested,
        current_value=current_value,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percentage=gain_loss_percentage(
            total_gain_loss, total_invested
        ),
    )


def sort_accounts(accounts: Iterable[Account]) -> list[Account]:
    """Order accounts deterministically by (sort_order, name), then id."""
    return sorted(accounts, key=lambda a: (a.sort_order, a.name, a.id))


class PerformanceCalculator:
    """Prices holdings through a ``PriceResolver`` and computes gain/loss."""

    def __init__(
        self,
        prices: PriceResolver,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.prices = prices
        self.clock = clock

    def calculate(self, holdings: Iterable[Holding]) -> list[HoldingPerformance]:
        """Compute performance for each holding, in input order."""
        as_of = self.clock()
        return [
            compute_holding_performance(h, self.prices.get_current_price(h), as_of)
            for h in holdings
        ]

    def account_performance(self, account: Account) -> AccountPerformance:
        return aggregate_account(
            account.id, account.name, self.calculate(account.holdings)
        )

    def all_accounts_performance(
        self,
        accounts: Iterable[Account],
    ) -> list[AccountPerformance]:
        """Compute every account's performance, ordered by (sort_order, name)."""
        return [self.account_performance(a) for a in sort_accounts(accounts)]

"""Domain types shared by the stores, resolvers, and calculators.

Holdings and accounts are owned by the outer application and are
read-only here. Exchange rates and security prices are the two cached
market-data entities, persisted through ``followinvest.db.market_store``.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

# Countries by holding currency, used for dashboard grouping
_COUNTRY_BY_CURRENCY: dict[str, str] = {
    "BRL": "Brazil",
    "CAD": "Canada",
    "USD": "United States",
}


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Timestamps are stored without a zone (DuckDB ``TIMESTAMP``), so every
    comparison against stored values uses naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string to ``Decimal`` without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def normalize_currency(code: str) -> str:
    """Upper-case and validate an ISO-4217 style currency code.

    Raises:
        ValueError: If the code is not three letters.

    """
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():  # noqa: PLR2004
        msg = f"Invalid currency code: '{code}'"
        raise ValueError(msg)
    return normalized


class Category(StrEnum):
    """Investment categories as recorded by the outer application."""

    RENDA_FIXA = "RendaFixa"
    STOCKS = "Stocks"
    FIIS = "FIIs"
    ETF = "ETF"
    BONDS = "Bonds"
    MANAGED_PORTFOLIO = "ManagedPortfolio"
    CASH = "Cash"
    MANAGED_PORTFOLIO_BLOCK = "ManagedPortfolioBlock"

    @property
    def is_tradable(self) -> bool:
        """Whether instruments in this category have a market price."""
        return self in TRADABLE_CATEGORIES


TRADABLE_CATEGORIES: frozenset[Category] = frozenset(
    {Category.STOCKS, Category.ETF, Category.FIIS}
)


@dataclass(frozen=True)
class ExchangeRate:
    """Cached rate for one ordered currency pair.

    Attributes:
        from_currency: Source currency code.
        to_currency: Target currency code.
        rate: Units of ``to_currency`` per unit of ``from_currency``.
        last_updated: When the rate was last fetched (naive UTC).
        created_at: When the row was first written (naive UTC).

    """

    from_currency: str
    to_currency: str
    rate: Decimal
    last_updated: datetime
    created_at: datetime | None = None

    @property
    def pair(self) -> str:
        return f"{self.from_currency}{self.to_currency}"


@dataclass
class SecurityPrice:
    """One daily bar for a symbol.

    Attributes:
        symbol: Provider ticker (e.g. "VFV.TO").
        price_date: Trading date of the bar.
        close: Closing (or latest) price.
        open: Opening price, if reported.
        high: Session high, if reported.
        low: Session low, if reported.
        volume: Traded volume, if reported.
        currency: Quote currency reported by the provider.
        exchange_name: Exchange label reported by the provider.
        created_at: First persisted (naive UTC).
        updated_at: Last refreshed (naive UTC).

    """

    symbol: str
    price_date: date
    close: Decimal
    open: Decimal | None = None
    high: Decimal | None = None
    low: Decimal | None = None
    volume: int | None = None
    currency: str | None = None
    exchange_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price_date": self.price_date,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "currency": self.currency,
            "exchange_name": self.exchange_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Holding:
    """A position as recorded by the user (read-only to this layer).

    Attributes:
        id: Identifier assigned by the outer application.
        name: Free-text name, often containing the ticker.
        quantity: Units held.
        purchase_value: Unit purchase price in ``currency``.
        currency: Currency the holding is denominated in.
        category: Investment category.
        account_id: Owning account identifier.
        account_name: Owning account name, when known.
        purchase_date: Date of purchase, when known.

    """

    id: int
    name: str
    quantity: Decimal
    purchase_value: Decimal
    currency: str
    category: Category
    account_id: int | None = None
    account_name: str = ""
    purchase_date: date | None = None

    @property
    def total(self) -> Decimal:
        """Amount invested: quantity times unit purchase value."""
        return self.quantity * self.purchase_value

    @property
    def country(self) -> str:
        return _COUNTRY_BY_CURRENCY.get(self.currency, "Other")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Holding:
        """Build a holding from a JSON-style dict.

        Accepts ``purchase_value`` or the outer application's ``value``
        key for the unit purchase price.
        """
        purchase = data.get("purchase_value", data.get("value"))
        if purchase is None:
            msg = f"Holding {data.get('id')} is missing purchase_value"
            raise ValueError(msg)
        raw_date = data.get("purchase_date", data.get("date"))
        purchase_date = (
            date.fromisoformat(str(raw_date)[:10]) if raw_date else None
        )
        return cls(
            id=int(data.get("id", 0)),
            name=str(data.get("name", "")),
            quantity=to_decimal(data.get("quantity", 0)),
            purchase_value=to_decimal(purchase),
            currency=normalize_currency(str(data.get("currency", ""))),
            category=Category(data["category"]),
            account_id=data.get("account_id"),
            account_name=str(data.get("account_name", "")),
            purchase_date=purchase_date,
        )


@dataclass(frozen=True)
class Account:
    """An account grouping holdings (read-only to this layer)."""

    id: int
    name: str
    sort_order: int = 0
    holdings: tuple[Holding, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        account_id = int(data["id"])
        name = str(data.get("name", ""))
        holdings = tuple(
            Holding.from_dict(
                {"account_id": account_id, "account_name": name, **h}
            )
            for h in data.get("holdings", [])
        )
        return cls(
            id=account_id,
            name=name,
            sort_order=int(data.get("sort_order", 0)),
            holdings=holdings,
        )

"""Security price resolution with a last-known-value fallback.

``get_current_price`` answers with a ``PriceResult`` whose ``status``
says exactly why a price is or isn't there. Missing prices are normal:
cash, bonds and managed portfolios have none, free-text names may not
map to a ticker, and providers go down. None of these raise.

Today's cached bar is reused while it is younger than the freshness
window (4 hours by default). When a refetch fails, the most recent
stored bar is served regardless of its age.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import StrEnum

from followinvest.db.market_store import PriceStore
from followinvest.errors import MarketDataError
from followinvest.market.base import PriceProvider
from followinvest.market.symbols import SymbolMapper
from followinvest.models import Holding, SecurityPrice, utcnow

logger = logging.getLogger(__name__)

PRICE_FRESHNESS = timedelta(hours=4)
DEFAULT_SERIES_DAYS = 30


class PriceStatus(StrEnum):
    """Why a ``PriceResult`` does or does not carry a price."""

    NOT_TRADABLE = "not_tradable"
    UNMAPPABLE = "unmappable"
    CACHED = "cached"
    FETCHED = "fetched"
    LAST_KNOWN = "last_known"
    NO_PRICE = "no_price"


@dataclass(frozen=True)
class PriceResult:
    """Outcome of a current-price lookup for one holding."""

    status: PriceStatus
    symbol: str | None = None
    price: Decimal | None = None
    price_date: date | None = None

    @property
    def has_price(self) -> bool:
        return self.price is not None

    @property
    def is_stale(self) -> bool:
        """True when a refresh failed and an older stored price was served."""
        return self.status is PriceStatus.LAST_KNOWN

    @classmethod
    def from_bar(cls, status: PriceStatus, bar: SecurityPrice) -> PriceResult:
        return cls(status, bar.symbol, bar.close, bar.price_date)

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "symbol": self.symbol,
            "price": self.price,
            "price_date": self.price_date,
            "has_price": self.has_price,
            "is_stale": self.is_stale,
        }


class PriceResolver:
    """Resolves current prices and price series through the cache and provider.

    Args:
        store: Price cache.
        provider: Daily bar provider.
        mapper: Name-to-symbol mapper.
        clock: Returns the current naive-UTC time.
        freshness: Maximum age of today's cached bar.

    """

    def __init__(
        self,
        store: PriceStore,
        provider: PriceProvider,
        mapper: SymbolMapper,
        clock: Callable[[], datetime] = utcnow,
        freshness: timedelta = PRICE_FRESHNESS,
    ) -> None:
        self.store = store
        self.provider = provider
        self.mapper = mapper
        self.clock = clock
        self.freshness = freshness

    def _is_fresh(self, bar: SecurityPrice, now: datetime) -> bool:
        return bar.updated_at is not None and now - bar.updated_at < self.freshness

    def get_current_price(self, holding: Holding) -> PriceResult:
        """Resolve today's price for a holding.

        Args:
            holding: The position to price.

        Returns:
            PriceResult. Only FETCHED, CACHED and LAST_KNOWN carry a price.

        """
        if not holding.category.is_tradable:
            return PriceResult(PriceStatus.NOT_TRADABLE)

        symbol = self.mapper.map_to_symbol(holding.name, holding.currency)
        if symbol is None:
            logger.warning(
                "Could not map investment %r (%s) to a stock symbol",
                holding.name,
                holding.currency,
            )
            return PriceResult(PriceStatus.UNMAPPABLE)

        now = self.clock()
        today = now.date()
        cached = self.store.get(symbol, today)
        if cached is not None and self._is_fresh(cached, now):
            logger.debug("Cache hit for %s on %s", symbol, today)
            return PriceResult.from_bar(PriceStatus.CACHED, cached)

        fetched = self._fetch_bar(symbol, today)
        if fetched is not None:
            self.store.upsert([fetched], now)
            return PriceResult.from_bar(PriceStatus.FETCHED, fetched)

        last_known = self.store.latest(symbol)
        if last_known is None:
            logger.info("No price available for %s", symbol)
            return PriceResult(PriceStatus.NO_PRICE, symbol)

        logger.warning(
            "Serving last known price for %s from %s (updated %s)",
            symbol,
            last_known.price_date,
            last_known.updated_at,
        )
        return PriceResult.from_bar(PriceStatus.LAST_KNOWN, last_known)

    def _fetch_bar(self, symbol: str, day: date) -> SecurityPrice | None:
        """Fetch the bar for one day; None on failure or when no session traded."""
        try:
            bars = self.provider.fetch_prices(symbol, day, day)
        except MarketDataError as exc:
            logger.warning(
                "Price provider %s failed for %s: %s", self.provider.name, symbol, exc
            )
            return None
        return next((bar for bar in bars if bar.price_date == day), None)

    def get_price_series(
        self,
        symbol: str,
        start_date: date | None = None,
        end_date: date | None = None,
        *,
        force_refresh: bool = False,
    ) -> list[SecurityPrice]:
        """Return stored bars for a range, refetching when the cache falls short.

        Args:
            symbol: Ticker symbol.
            start_date: Inclusive start; defaults to 30 days before ``end_date``.
            end_date: Inclusive end; defaults to today.
            force_refresh: Refetch even when the cache looks current.

        Returns:
            Bars ordered by date ascending.

        Raises:
            ValueError: If symbol is empty or start > end.

        """
        if not symbol or not symbol.strip():
            msg = "symbol must be a non-empty string"
            raise ValueError(msg)
        symbol = symbol.strip().upper()

        now = self.clock()
        end = end_date or now.date()
        start = start_date or end - timedelta(days=DEFAULT_SERIES_DAYS)
        if start > end:
            msg = f"start_date ({start}) must be <= end_date ({end})"
            raise ValueError(msg)

        rows = self.store.query_range(symbol, start, end)
        if not force_refresh and not self._is_series_stale(rows, end, now):
            return rows

        logger.info("Refreshing %s prices (%s to %s)", symbol, start, end)
        try:
            fresh = self.provider.fetch_prices(symbol, start, end)
        except MarketDataError as exc:
            logger.warning(
                "Price provider %s failed for %s series: %s; serving stored rows",
                self.provider.name,
                symbol,
                exc,
            )
            return rows

        if fresh:
            self.store.upsert(fresh, now)
        return self.store.query_range(symbol, start, end)

    def _is_series_stale(
        self,
        rows: list[SecurityPrice],
        requested_end: date,
        now: datetime,
    ) -> bool:
        if not rows:
            return True
        today = now.date()
        latest = rows[-1]
        # Upper bound not covered, and it is not in the future
        if latest.price_date < requested_end <= today:
            return True
        if latest.price_date == today:
            return not self._is_fresh(latest, now)
        return False

"""Exchange-rate resolution: cache first, then providers in fixed order.

A stored rate is served while it is younger than the freshness window
(24 hours by default). On a miss or a stale row the providers are tried
in the order given, primary first; the first success is persisted and
returned. When every provider fails the caller gets an explicit
unavailable ``RateResult`` and nothing is written.

Rates are directional: CAD->USD and USD->CAD are separate rows, each
fetched on its own. No inverse is ever derived.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum

from followinvest.db.market_store import RATE_QUANTUM, RateStore
from followinvest.errors import MarketDataError, NoRateAvailable, ParseError
from followinvest.market.base import RateProvider
from followinvest.models import normalize_currency, to_decimal, utcnow

logger = logging.getLogger(__name__)

RATE_FRESHNESS = timedelta(hours=24)


class RateSource(StrEnum):
    """Where a resolved rate came from."""

    IDENTITY = "identity"
    CACHE = "cache"
    PROVIDER = "provider"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RateResult:
    """Outcome of a rate lookup. ``rate`` is None only when unavailable."""

    from_currency: str
    to_currency: str
    rate: Decimal | None
    source: RateSource
    provider: str | None = None
    last_updated: datetime | None = None

    @property
    def available(self) -> bool:
        return self.rate is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "from_currency": self.from_currency,
            "to_currency": self.to_currency,
            "rate": self.rate,
            "available": self.available,
            "source": self.source.value,
            "provider": self.provider,
            "last_updated": self.last_updated,
        }


@dataclass
class RefreshReport:
    """Per-pair outcome of a batch refresh."""

    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        """True when at least one pair was attempted and none succeeded."""
        return bool(self.failed) and not self.updated

    def to_dict(self) -> dict[str, object]:
        return {"updated": list(self.updated), "failed": list(self.failed)}


class ExchangeRateResolver:
    """Resolves ordered currency-pair rates through the cache and providers.

    Args:
        store: Rate cache.
        providers: Providers in fallback order, primary first.
        clock: Returns the current naive-UTC time.
        freshness: Maximum age of a cached rate.

    """

    def __init__(
        self,
        store: RateStore,
        providers: Sequence[RateProvider],
        clock: Callable[[], datetime] = utcnow,
        freshness: timedelta = RATE_FRESHNESS,
    ) -> None:
        if not providers:
            msg = "at least one rate provider is required"
            raise ValueError(msg)
        self.store = store
        self.providers = tuple(providers)
        self.clock = clock
        self.freshness = freshness

    def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        *,
        force_refresh: bool = False,
    ) -> RateResult:
        """Resolve the rate for an ordered pair.

        Args:
            from_currency: Source currency code.
            to_currency: Target currency code.
            force_refresh: Skip the cache and go straight to the providers.

        Returns:
            RateResult; check ``available`` before using ``rate``.

        Raises:
            ValueError: If a currency code is malformed.

        """
        source = normalize_currency(from_currency)
        target = normalize_currency(to_currency)

        if source == target:
            return RateResult(source, target, Decimal(1), RateSource.IDENTITY)

        now = self.clock()
        if not force_refresh:
            cached = self.store.get(source, target)
            if cached is not None and now - cached.last_updated < self.freshness:
                logger.debug("Cache hit for %s%s", source, target)
                return RateResult(
                    source,
                    target,
                    cached.rate,
                    RateSource.CACHE,
                    last_updated=cached.last_updated,
                )

        for provider in self.providers:
            try:
                rate = provider.fetch_rate(source, target)
                if rate.quantize(RATE_QUANTUM) <= 0:
                    msg = f"rate {rate} rounds to zero"
                    raise ParseError(provider.name, f"{source}{target}", msg)
            except MarketDataError as exc:
                logger.warning(
                    "Rate provider %s failed for %s%s: %s",
                    provider.name,
                    source,
                    target,
                    exc,
                )
                continue

            stored = self.store.upsert(source, target, rate, now)
            logger.info(
                "Resolved %s%s = %s via %s", source, target, stored.rate, provider.name
            )
            return RateResult(
                source,
                target,
                stored.rate,
                RateSource.PROVIDER,
                provider=provider.name,
                last_updated=now,
            )

        logger.error(
            "No exchange rate available for %s%s from %d provider(s)",
            source,
            target,
            len(self.providers),
        )
        return RateResult(source, target, None, RateSource.UNAVAILABLE)

    def convert(
        self,
        amount: Decimal | float | str,
        from_currency: str,
        to_currency: str,
    ) -> Decimal:
        """Convert an amount between currencies.

        Raises:
            NoRateAvailable: If the rate cannot be resolved.
            ValueError: If a currency code is malformed.

        """
        value = to_decimal(amount)
        result = self.get_rate(from_currency, to_currency)
        if result.source is RateSource.IDENTITY:
            return value
        if result.rate is None:
            raise NoRateAvailable(result.from_currency, result.to_currency)
        return value * result.rate

    def update_all(self, pairs: Iterable[tuple[str, str]]) -> RefreshReport:
        """Refresh every pair from the providers, bypassing the cache.

        A failure on one pair is logged and recorded; the batch goes on.

        Args:
            pairs: Ordered (from, to) pairs to refresh.

        Returns:
            RefreshReport listing updated and failed pairs.

        """
        report = RefreshReport()
        logger.info("Updating all exchange rates...")
        for from_currency, to_currency in pairs:
            pair = f"{from_currency}{to_currency}"
            try:
                result = self.get_rate(from_currency, to_currency, force_refresh=True)
            except Exception:
                logger.exception("Failed to refresh exchange rate %s", pair)
                report.failed.append(pair)
                continue
            if result.available:
                report.updated.append(pair)
            else:
                report.failed.append(pair)

        logger.info(
            "Exchange rate refresh finished: %d updated, %d failed",
            len(report.updated),
            len(report.failed),
        )
        return report

    def current_rates(self) -> dict[str, Decimal]:
        """Return every stored rate refreshed within the freshness window.

        Keys are concatenated pair codes, e.g. ``{"CADUSD": Decimal(...)}``.
        """
        cutoff = self.clock() - self.freshness
        return {rate.pair: rate.rate for rate in self.store.updated_since(cutoff)}

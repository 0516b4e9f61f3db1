"""Provider interfaces consumed by the resolvers.

Every adapter implements the same contract so the resolvers don't need
to know which upstream they are talking to. Adapters raise
``ProviderUnavailable`` for transport failures and non-success statuses
and ``ParseError`` for payloads they cannot interpret.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

from followinvest.models import SecurityPrice


class RateProvider(ABC):
    """Source of spot exchange rates."""

    name: str = "unnamed-rate-provider"

    @abstractmethod
    def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Return units of ``to_currency`` per unit of ``from_currency``."""


class PriceProvider(ABC):
    """Source of daily security bars."""

    name: str = "unnamed-price-provider"

    @abstractmethod
    def fetch_prices(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[SecurityPrice]:
        """Return daily bars for ``symbol`` in the inclusive range, oldest first."""

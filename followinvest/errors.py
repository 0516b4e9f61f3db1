"""Exception hierarchy for the market-data layer.

Provider adapters raise ``ProviderUnavailable`` or ``ParseError``; the
resolvers absorb both and move to the next fallback step. Only
``NoRateAvailable`` (from currency conversion) and ``UnmappableSymbol``
(from strict symbol resolution) reach callers.
"""

from __future__ import annotations


class MarketDataError(Exception):
    """Base class for all market-data failures."""


class ProviderUnavailable(MarketDataError):
    """Provider could not be reached or answered with a non-success status."""

    def __init__(
        self,
        provider: str,
        subject: str,
        reason: str,
        status: int | None = None,
    ) -> None:
        self.provider = provider
        self.subject = subject
        self.reason = reason
        self.status = status
        detail = f" (status {status})" if status is not None else ""
        super().__init__(f"{provider} unavailable for {subject}{detail}: {reason}")


class ParseError(MarketDataError):
    """Provider answered, but the payload could not be interpreted."""

    def __init__(self, provider: str, subject: str, reason: str) -> None:
        self.provider = provider
        self.subject = subject
        self.reason = reason
        super().__init__(
            f"{provider} returned an unusable payload for {subject}: {reason}"
        )


class UnmappableSymbol(MarketDataError):
    """No heuristic produced a ticker for an investment name."""

    def __init__(self, name: str, currency: str) -> None:
        self.name = name
        self.currency = currency
        super().__init__(f"Could not map '{name}' ({currency}) to a symbol")


class NoRateAvailable(MarketDataError):
    """Neither the cache nor any provider could supply an exchange rate."""

    def __init__(self, from_currency: str, to_currency: str) -> None:
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            f"Could not get exchange rate from {from_currency} to {to_currency}"
        )

"""Wiring of stores, providers, resolvers and the refresher.

``MarketDataService`` owns one DuckDB connection and every long-lived
component built on it. The sidecar entry point creates one instance per
process; tests build one over an in-memory database with fake providers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

import duckdb

from followinvest.config import Settings
from followinvest.db.connection import init_market_db
from followinvest.db.market_store import PriceStore, RateStore
from followinvest.market.base import PriceProvider, RateProvider
from followinvest.market.rates_api import RatesApiProvider
from followinvest.market.symbols import SymbolMapper
from followinvest.market.yahoo import YahooPriceProvider, YahooRateProvider
from followinvest.models import Account
from followinvest.portfolio.dashboard import build_dashboard
from followinvest.portfolio.performance import PerformanceCalculator
from followinvest.portfolio.result_cache import ResultCache, scope_key
from followinvest.resolvers.exchange_rates import ExchangeRateResolver, RefreshReport
from followinvest.resolvers.prices import PriceResolver
from followinvest.scheduler import ScheduledRefresher

logger = logging.getLogger(__name__)


class MarketDataService:
    """Every market-data component for one process, built over one connection.

    Args:
        conn: Initialized DuckDB connection holding the market schema.
        rate_providers: Rate providers in fallback order.
        price_provider: Daily bar provider.
        settings: Freshness windows, refresh schedule and tracked pairs.

    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        rate_providers: Sequence[RateProvider],
        price_provider: PriceProvider,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.conn = conn
        self.rate_store = RateStore(conn)
        self.price_store = PriceStore(conn)
        self.rate_providers = tuple(rate_providers)
        self.mapper = SymbolMapper()
        self.rates = ExchangeRateResolver(
            self.rate_store,
            self.rate_providers,
            freshness=self.settings.rate_freshness,
        )
        self.prices = PriceResolver(
            self.price_store,
            price_provider,
            self.mapper,
            freshness=self.settings.price_freshness,
        )
        self.calculator = PerformanceCalculator(self.prices)
        self.cache = ResultCache(ttl=self.settings.cache_ttl_seconds)
        self.refresher = ScheduledRefresher(
            self.refresh_rates,
            interval=self.settings.refresh_interval,
            initial_delay=self.settings.refresh_initial_delay,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketDataService:
        """Open the on-disk cache and build the production providers."""
        conn = init_market_db(settings.market_db_path)
        rate_providers: list[RateProvider] = [
            RatesApiProvider(settings.rates_api_url, timeout=settings.http_timeout),
            YahooRateProvider(timeout=settings.http_timeout),
        ]
        return cls(
            conn,
            rate_providers,
            YahooPriceProvider(timeout=settings.http_timeout),
            settings,
        )

    def refresh_rates(self) -> RefreshReport:
        """Refresh every tracked pair."""
        return self.rates.update_all(self.settings.tracked_pairs)

    def dashboard(self, scope: str | int, accounts: Iterable[Account]) -> Any:
        """Dashboard view for ``scope``, served from the result cache when present."""
        return self.cache.get_or_compute(
            scope_key("dashboard", scope),
            lambda: build_dashboard(accounts, self.calculator),
        )

    def accounts_performance(
        self, scope: str | int, accounts: Iterable[Account]
    ) -> Any:
        """Per-account performance for ``scope``, cached like the dashboard."""
        return self.cache.get_or_compute(
            scope_key("accounts-performance", scope),
            lambda: [
                p.to_dict() for p in self.calculator.all_accounts_performance(accounts)
            ],
        )

    def close(self) -> None:
        """Stop the refresher, release HTTP sessions and close the database."""
        self.refresher.stop(timeout=5.0)
        for provider in self.rate_providers:
            close = getattr(provider, "close", None)
            if callable(close):
                close()
        self.conn.close()
        logger.info("Market data service closed")

"""Tests for runtime settings."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from followinvest.config import (
    DEFAULT_TRACKED_PAIRS,
    Settings,
    parse_pair,
    parse_pairs,
)


class TestParsePair:
    """Tests for currency pair parsing."""

    @pytest.mark.parametrize("text", ["CAD/USD", "CADUSD", "cadusd=x", " CAD/USD "])
    def test_accepted_forms(self, text):
        assert parse_pair(text) == ("CAD", "USD")

    @pytest.mark.parametrize("text", ["CAD", "CAD/US", "CAD-USD", ""])
    def test_rejected_forms(self, text):
        with pytest.raises(ValueError, match="Invalid currency pair"):
            parse_pair(text)

    def test_parse_pairs_skips_blanks(self):
        assert parse_pairs("CAD/USD, ,USDBRL,") == (("CAD", "USD"), ("USD", "BRL"))


class TestSettings:
    """Tests for defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.tracked_pairs == DEFAULT_TRACKED_PAIRS
        assert len(settings.tracked_pairs) == 6
        assert settings.refresh_interval == timedelta(hours=24)
        assert settings.refresh_initial_delay == timedelta(minutes=2)
        assert settings.rate_freshness == timedelta(hours=24)
        assert settings.price_freshness == timedelta(hours=4)
        assert settings.cache_ttl_seconds == 3600
        assert settings.verbose is False

    def test_env_overrides(self, tmp_path):
        env = {
            "FOLLOWINVEST_DATA_DIR": str(tmp_path),
            "FOLLOWINVEST_RATES_API_URL": "http://localhost:9000/latest",
            "FOLLOWINVEST_TRACKED_PAIRS": "EUR/USD",
            "FOLLOWINVEST_HTTP_TIMEOUT": "2.5",
            "FOLLOWINVEST_PRICE_FRESHNESS_HOURS": "1",
            "FOLLOWINVEST_VERBOSE": "true",
        }
        settings = Settings.from_env(env)

        assert settings.market_db_path == Path(tmp_path) / "market.duckdb"
        assert settings.rates_api_url == "http://localhost:9000/latest"
        assert settings.tracked_pairs == (("EUR", "USD"),)
        assert settings.http_timeout == 2.5
        assert settings.price_freshness == timedelta(hours=1)
        assert settings.verbose is True

    def test_blank_values_ignored(self):
        settings = Settings.from_env({"FOLLOWINVEST_HTTP_TIMEOUT": "  "})
        assert settings.http_timeout == 10.0

    def test_non_numeric_rejected(self):
        with pytest.raises(ValueError, match="must be a number"):
            Settings.from_env({"FOLLOWINVEST_CACHE_TTL_SECONDS": "soon"})

    def test_non_positive_rejected(self):
        with pytest.raises(ValueError, match="must be positive"):
            Settings.from_env({"FOLLOWINVEST_REFRESH_INTERVAL_HOURS": "0"})

    def test_bad_pair_rejected(self):
        with pytest.raises(ValueError, match="Invalid currency pair"):
            Settings.from_env({"FOLLOWINVEST_TRACKED_PAIRS": "CAD-USD"})

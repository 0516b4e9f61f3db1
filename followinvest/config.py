"""Runtime settings for the market-data layer.

Every value has a default suitable for a single-user desktop install and
can be overridden through ``FOLLOWINVEST_*`` environment variables:

    FOLLOWINVEST_DATA_DIR                  ~/.followinvest/data
    FOLLOWINVEST_RATES_API_URL             https://api.frankfurter.app/latest
    FOLLOWINVEST_HTTP_TIMEOUT              10 (seconds)
    FOLLOWINVEST_TRACKED_PAIRS             CAD/USD,BRL/USD,...
    FOLLOWINVEST_REFRESH_INTERVAL_HOURS    24
    FOLLOWINVEST_REFRESH_INITIAL_DELAY_MINUTES  2
    FOLLOWINVEST_RATE_FRESHNESS_HOURS      24
    FOLLOWINVEST_PRICE_FRESHNESS_HOURS     4
    FOLLOWINVEST_CACHE_TTL_SECONDS         3600
    FOLLOWINVEST_VERBOSE                   false

"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

_ENV_PREFIX = "FOLLOWINVEST_"

_DEFAULT_DATA_DIR = Path.home() / ".followinvest" / "data"

DEFAULT_RATES_API_URL = "https://api.frankfurter.app/latest"

# Ordered pairs refreshed by the scheduler; A->B and B->A are tracked separately
DEFAULT_TRACKED_PAIRS: tuple[tuple[str, str], ...] = (
    ("CAD", "USD"),
    ("BRL", "USD"),
    ("CAD", "BRL"),
    ("USD", "CAD"),
    ("USD", "BRL"),
    ("BRL", "CAD"),
)

# Accepts "CAD/USD", "CADUSD" and the Yahoo form "CADUSD=X"
_PAIR_RE = re.compile(r"^([A-Z]{3})/?([A-Z]{3})(?:=X)?$")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_pair(text: str) -> tuple[str, str]:
    """Parse a currency pair string.

    Args:
        text: Pair such as "CAD/USD", "CADUSD" or "CADUSD=X".

    Returns:
        Tuple of (from_currency, to_currency).

    Raises:
        ValueError: If the text is not a recognizable pair.

    """
    match = _PAIR_RE.match(text.strip().upper())
    if not match:
        msg = f"Invalid currency pair: '{text}'"
        raise ValueError(msg)
    return match.group(1), match.group(2)


def parse_pairs(text: str) -> tuple[tuple[str, str], ...]:
    """Parse a comma-separated list of currency pairs, skipping blanks."""
    return tuple(parse_pair(part) for part in text.split(",") if part.strip())


def _positive_float(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{name} must be a number, got '{raw}'"
        raise ValueError(msg) from exc
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ValueError(msg)
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    data_dir: Path = _DEFAULT_DATA_DIR
    rates_api_url: str = DEFAULT_RATES_API_URL
    http_timeout: float = 10.0
    tracked_pairs: tuple[tuple[str, str], ...] = DEFAULT_TRACKED_PAIRS
    refresh_interval_hours: float = 24.0
    refresh_initial_delay_minutes: float = 2.0
    rate_freshness_hours: float = 24.0
    price_freshness_hours: float = 4.0
    cache_ttl_seconds: float = 3600.0
    verbose: bool = False

    @property
    def market_db_path(self) -> Path:
        return self.data_dir / "market.duckdb"

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(hours=self.refresh_interval_hours)

    @property
    def refresh_initial_delay(self) -> timedelta:
        return timedelta(minutes=self.refresh_initial_delay_minutes)

    @property
    def rate_freshness(self) -> timedelta:
        return timedelta(hours=self.rate_freshness_hours)

    @property
    def price_freshness(self) -> timedelta:
        return timedelta(hours=self.price_freshness_hours)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Settings with every variable that is set applied.

        Raises:
            ValueError: If a variable holds an invalid value.

        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(_ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        kwargs: dict[str, object] = {}
        if (data_dir := get("DATA_DIR")) is not None:
            kwargs["data_dir"] = Path(data_dir).expanduser()
        if (url := get("RATES_API_URL")) is not None:
            kwargs["rates_api_url"] = url
        if (pairs := get("TRACKED_PAIRS")) is not None:
            kwargs["tracked_pairs"] = parse_pairs(pairs)
        if (verbose := get("VERBOSE")) is not None:
            kwargs["verbose"] = verbose.lower() in _TRUE_VALUES

        numeric_fields = {
            "HTTP_TIMEOUT": "http_timeout",
            "REFRESH_INTERVAL_HOURS": "refresh_interval_hours",
            "REFRESH_INITIAL_DELAY_MINUTES": "refresh_initial_delay_minutes",
            "RATE_FRESHNESS_HOURS": "rate_freshness_hours",
            "PRICE_FRESHNESS_HOURS": "price_freshness_hours",
            "CACHE_TTL_SECONDS": "cache_ttl_seconds",
        }
        for env_name, field_name in numeric_fields.items():
            if (raw := get(env_name)) is not None:
                kwargs[field_name] = _positive_float(raw, _ENV_PREFIX + env_name)

        return cls(**kwargs)  # type: ignore[arg-type]

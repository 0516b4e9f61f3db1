"""Yahoo Finance chart adapter.

Fetches daily OHLCV bars and chart metadata via the yfinance library.
This is the price source for equities, ETFs and FIIs, and the secondary
exchange-rate source through synthetic pair symbols (``CADUSD=X``).

Note:
    yfinance uses an unofficial Yahoo Finance API. Rate limiting
    and respectful request patterns are required.

    Any failure inside yfinance (network, HTTP status, throttling) is
    reported as ``ProviderUnavailable`` so callers can fall back.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from followinvest.errors import ParseError, ProviderUnavailable
from followinvest.market.base import PriceProvider, RateProvider
from followinvest.market.validation import validate_bar
from followinvest.models import SecurityPrice

logger = logging.getLogger(__name__)

PROVIDER_NAME = "yahoo"


def _require_yfinance() -> tuple[Any, Any]:
    """Lazy-import yfinance and pandas.

    Returns:
        Tuple of (yfinance module, pandas module).

    Raises:
        ImportError: If yfinance is not installed.

    """
    try:
        import pandas as pd
        import yfinance as yf
    except ImportError as exc:
        msg = (
            "yfinance is required for Yahoo Finance data. "
            "Install with: pip install followinvest"
        )
        raise ImportError(msg) from exc
    return yf, pd


def _validate_dates(start_date: date, end_date: date) -> tuple[date, date]:
    """Validate a date range.

    Raises:
        ValueError: If start > end.

    """
    if start_date > end_date:
        msg = f"start_date ({start_date}) must be <= end_date ({end_date})"
        raise ValueError(msg)
    return start_date, end_date


def pair_symbol(from_currency: str, to_currency: str) -> str:
    """Build the Yahoo symbol for a currency pair, e.g. ``CADUSD=X``."""
    return f"{from_currency}{to_currency}=X"


def _to_price(value: Any, pd: Any) -> Decimal | None:
    if value is None or pd.isna(value):
        return None
    return Decimal(str(round(float(value), 4)))


@dataclass(frozen=True)
class ChartMeta:
    """The subset of ``chart.result[0].meta`` used by this layer."""

    symbol: str
    currency: str | None = None
    exchange_name: str | None = None
    regular_market_price: Decimal | None = None


@dataclass(frozen=True)
class Chart:
    """Parsed chart: metadata plus daily bars ordered by date."""

    meta: ChartMeta
    bars: list[SecurityPrice] = field(default_factory=list)


def _parse_meta(symbol: str, raw_meta: dict[str, Any]) -> ChartMeta:
    price = raw_meta.get("regularMarketPrice")
    try:
        market_price = Decimal(str(price)) if price is not None else None
    except ArithmeticError as exc:
        msg = f"regularMarketPrice is not numeric: {price!r}"
        raise ParseError(PROVIDER_NAME, symbol, msg) from exc
    if market_price is not None and not market_price.is_finite():
        market_price = None
    return ChartMeta(
        symbol=str(raw_meta.get("symbol") or symbol),
        currency=raw_meta.get("currency"),
        exchange_name=raw_meta.get("exchangeName"),
        regular_market_price=market_price,
    )


def _parse_bars(symbol: str, df: Any, meta: ChartMeta, pd: Any) -> list[SecurityPrice]:
    """Convert a yfinance history frame into bars, dropping unusable rows."""
    bars: list[SecurityPrice] = []
    for date_idx, row in df.iterrows():
        close = _to_price(row.get("Close"), pd)
        # Yahoo pads the current session with empty rows before the open
        if close is None:
            continue
        volume = row.get("Volume")
        bar = SecurityPrice(
            symbol=symbol,
            price_date=pd.Timestamp(date_idx).date(),
            close=close,
            open=_to_price(row.get("Open"), pd),
            high=_to_price(row.get("High"), pd),
            low=_to_price(row.get("Low"), pd),
            volume=None if volume is None or pd.isna(volume) else int(volume),
            currency=meta.currency,
            exchange_name=meta.exchange_name,
        )
        issues = validate_bar(bar)
        if issues:
            logger.warning(
                "Dropping %s bar for %s: %s",
                symbol,
                bar.price_date,
                "; ".join(issues),
            )
            continue
        bars.append(bar)
    return sorted(bars, key=lambda b: b.price_date)


def fetch_chart(
    symbol: str,
    start_date: date | None = None,
    end_date: date | None = None,
    timeout: float = 10.0,
) -> Chart:
    """Fetch the daily chart for a symbol.

    Args:
        symbol: Ticker or pair symbol (e.g. "VFV.TO", "CADUSD=X").
        start_date: Inclusive start. If omitted, the latest session only.
        end_date: Inclusive end. Defaults to ``start_date``.
        timeout: Per-request timeout in seconds.

    Returns:
        Chart with metadata and bars. Bars may be empty when the range
        has no trading sessions.

    Raises:
        ValueError: If symbol is empty or start > end.
        ProviderUnavailable: If Yahoo could not be reached or refused.
        ParseError: If the metadata is malformed.
        ImportError: If yfinance is not installed.

    """
    if not symbol or not symbol.strip():
        msg = "symbol must be a non-empty string"
        raise ValueError(msg)

    symbol = symbol.strip().upper()
    yf, pd = _require_yfinance()

    history_kwargs: dict[str, Any] = {
        "interval": "1d",
        "auto_adjust": False,
        "raise_errors": True,
        "timeout": timeout,
    }
    if start_date is None:
        history_kwargs["period"] = "1d"
    else:
        start, end = _validate_dates(start_date, end_date or start_date)
        history_kwargs["start"] = start.isoformat()
        # yfinance treats ``end`` as exclusive
        history_kwargs["end"] = (end + timedelta(days=1)).isoformat()

    ticker = yf.Ticker(symbol)
    # yfinance raises many unrelated types on transport errors
    try:
        df = ticker.history(**history_kwargs)
        raw_meta = ticker.history_metadata or {}
    except Exception as exc:  # noqa: BLE001
        raise ProviderUnavailable(PROVIDER_NAME, symbol, str(exc)) from exc

    if not isinstance(raw_meta, dict):
        raise ParseError(PROVIDER_NAME, symbol, "chart metadata is not an object")

    meta = _parse_meta(symbol, raw_meta)
    if df is None or df.empty:
        logger.warning("No chart data for %s (%s)", symbol, history_kwargs)
        return Chart(meta=meta)

    return Chart(meta=meta, bars=_parse_bars(symbol, df, meta, pd))


class YahooRateProvider(RateProvider):
    """Secondary rate provider: chart quote for a synthetic pair symbol."""

    name = PROVIDER_NAME

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        symbol = pair_symbol(from_currency, to_currency)
        logger.info("Fetching exchange rate for %s from Yahoo Finance", symbol)
        chart = fetch_chart(symbol, timeout=self.timeout)
        rate = chart.meta.regular_market_price
        if rate is None:
            raise ParseError(self.name, symbol, "no regularMarketPrice in chart meta")
        if rate <= 0:
            raise ParseError(self.name, symbol, f"non-positive rate {rate}")
        return rate


class YahooPriceProvider(PriceProvider):
    """Daily bars for tradable symbols."""

    name = PROVIDER_NAME

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def fetch_prices(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[SecurityPrice]:
        logger.info(
            "Fetching %s prices from Yahoo Finance (%s to %s)",
            symbol,
            start_date,
            end_date,
        )
        return fetch_chart(symbol, start_date, end_date, timeout=self.timeout).bars

"""Market data store: DuckDB CRUD for exchange rates and security prices.

Handles upsert (INSERT ... ON CONFLICT DO UPDATE) semantics so that
re-fetching a rate or a bar for an existing key overwrites it in place
while keeping the original ``created_at``.

Each operation runs on its own cursor, so request handlers and the
background refresher can share one connection. Concurrent upserts to
the same key are last-write-wins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from followinvest.models import ExchangeRate, SecurityPrice

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.00000001")
PRICE_QUANTUM = Decimal("0.0001")


def _quantize(value: Decimal | None, quantum: Decimal) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(quantum)


def _rows_as_dicts(cur: duckdb.DuckDBPyConnection) -> list[dict[str, Any]]:
    result = cur.fetchall()
    columns = [desc[0] for desc in cur.description]
    return [dict(zip(columns, row, strict=True)) for row in result]


class RateStore:
    """Cached exchange rates keyed by ordered (from, to) pair."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def get(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        """Return the stored rate for a pair, or None if never fetched."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT from_currency, to_currency, rate, last_updated, created_at
                FROM exchange_rates
                WHERE from_currency = ? AND to_currency = ?
                """,
                [from_currency, to_currency],
            )
            rows = _rows_as_dicts(cur)
        return ExchangeRate(**rows[0]) if rows else None

    def upsert(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        now: datetime,
    ) -> ExchangeRate:
        """Insert or update the rate for a pair.

        Args:
            from_currency: Source currency code.
            to_currency: Target currency code.
            rate: Positive rate; stored with 8 decimal places.
            now: Timestamp recorded as ``last_updated``.

        Returns:
            The rate as persisted.

        Raises:
            ValueError: If the rate is not positive once rounded.

        """
        stored = rate.quantize(RATE_QUANTUM)
        if stored <= 0:
            pair = f"{from_currency}{to_currency}"
            msg = f"rate must be positive, got {rate} for {pair}"
            raise ValueError(msg)

        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO exchange_rates
                    (from_currency, to_currency, rate, last_updated, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (from_currency, to_currency) DO UPDATE SET
                    rate = EXCLUDED.rate,
                    last_updated = EXCLUDED.last_updated
                """,
                [from_currency, to_currency, stored, now, now],
            )
        logger.info("Upserted rate %s->%s = %s", from_currency, to_currency, stored)
        return ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=stored,
            last_updated=now,
        )

    def updated_since(self, cutoff: datetime) -> list[ExchangeRate]:
        """Return every rate refreshed after ``cutoff``, ordered by pair."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT from_currency, to_currency, rate, last_updated, created_at
                FROM exchange_rates
                WHERE last_updated > ?
                ORDER BY from_currency, to_currency
                """,
                [cutoff],
            )
            rows = _rows_as_dicts(cur)
        return [ExchangeRate(**row) for row in rows]


class PriceStore:
    """Cached daily bars keyed by (symbol, price_date)."""

    _COLUMNS = (
        "symbol, price_date, open, high, low, close, volume, "
        "currency, exchange_name, created_at, updated_at"
    )

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def _query(
        self, where: str, params: list[Any], suffix: str = ""
    ) -> list[SecurityPrice]:
        sql = f"SELECT {self._COLUMNS} FROM security_prices WHERE {where} {suffix}"
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            rows = _rows_as_dicts(cur)
        return [SecurityPrice(**row) for row in rows]

    def get(self, symbol: str, price_date: date) -> SecurityPrice | None:
        """Return the bar for a symbol on a date, if stored."""
        rows = self._query("symbol = ? AND price_date = ?", [symbol, price_date])
        return rows[0] if rows else None

    def latest(self, symbol: str) -> SecurityPrice | None:
        """Return the most recent stored bar for a symbol, regardless of age."""
        rows = self._query(
            "symbol = ?",
            [symbol],
            "ORDER BY price_date DESC, updated_at DESC LIMIT 1",
        )
        return rows[0] if rows else None

    def query_range(
        self,
        symbol: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[SecurityPrice]:
        """Query stored bars for a symbol.

        Args:
            symbol: Ticker symbol.
            start_date: Optional inclusive lower bound.
            end_date: Optional inclusive upper bound.

        Returns:
            Bars ordered by date ascending.

        """
        where = "symbol = ?"
        params: list[Any] = [symbol]
        if start_date:
            where += " AND price_date >= ?"
            params.append(start_date)
        if end_date:
            where += " AND price_date <= ?"
            params.append(end_date)
        return self._query(where, params, "ORDER BY price_date ASC")

    def upsert(self, prices: Iterable[SecurityPrice], now: datetime) -> int:
        """Insert or update daily bars.

        Uses ON CONFLICT on the (symbol, price_date) primary key; an
        existing row keeps its ``created_at`` and gets ``updated_at = now``.

        Args:
            prices: Bars to persist.
            now: Timestamp recorded as ``updated_at`` (and ``created_at``
                for new rows).

        Returns:
            Number of bars upserted.

        """
        count = 0
        with self._conn.cursor() as cur:
            for price in prices:
                cur.execute(
                    """
                    INSERT INTO security_prices
                        (symbol, price_date, open, high, low, close, volume,
                         currency, exchange_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (symbol, price_date) DO UPDATE SET
                        open = EXCLUDED.open,
                        high = EXCLUDED.high,
                        low = EXCLUDED.low,
                        close = EXCLUDED.close,
                        volume = EXCLUDED.volume,
                        currency = EXCLUDED.currency,
                        exchange_name = EXCLUDED.exchange_name,
                        updated_at = EXCLUDED.updated_at
                    """,
                    [
                        price.symbol,
                        price.price_date,
                        _quantize(price.open, PRICE_QUANTUM),
                        _quantize(price.high, PRICE_QUANTUM),
                        _quantize(price.low, PRICE_QUANTUM),
                        _quantize(price.close, PRICE_QUANTUM),
                        price.volume,
                        price.currency,
                        price.exchange_name[:10] if price.exchange_name else None,
                        now,
                        now,
                    ],
                )
                count += 1

        if count:
            logger.info("Upserted %d security price records", count)
        return count

    def delete(self, symbol: str, price_date: date | None = None) -> int:
        """Delete stored bars for a symbol, optionally only one date.

        Returns:
            Number of rows deleted.

        """
        where = "symbol = ?"
        params: list[Any] = [symbol]
        if price_date:
            where += " AND price_date = ?"
            params.append(price_date)

        with self._conn.cursor() as cur:
            cur.execute(f"SELECT COUNT(*) FROM security_prices WHERE {where}", params)
            row = cur.fetchone()
            count = int(row[0]) if row else 0
            if count:
                cur.execute(f"DELETE FROM security_prices WHERE {where}", params)

        logger.info("Deleted %d security price records for %s", count, symbol)
        return count

    def symbols(self) -> list[str]:
        """Return every symbol with at least one stored bar, sorted."""
        with self._conn.cursor() as cur:
            cur.execute("SELECT DISTINCT symbol FROM security_prices ORDER BY symbol")
            return [row[0] for row in cur.fetchall()]

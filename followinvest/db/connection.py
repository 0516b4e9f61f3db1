"""Opening the market-data cache.

One DuckDB file per install holds both cache tables::

    ~/.followinvest/
      data/
        market.duckdb

Tests use an in-memory database with the same schema.
"""

from __future__ import annotations

import logging
from pathlib import Path

import duckdb

from followinvest.db.schema import ALL_TABLES

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"


def get_connection(
    db_path: str | Path | None = None,
    read_only: bool = False,
) -> duckdb.DuckDBPyConnection:
    """Connect to a cache file, creating its directory if needed.

    Args:
        db_path: Location of the .duckdb file; None for an in-memory database.
        read_only: Open without write access.

    Returns:
        Open DuckDB connection.

    """
    if db_path is None:
        return duckdb.connect(_MEMORY)

    target = Path(db_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(target), read_only=read_only)


def _apply_schema(conn: duckdb.DuckDBPyConnection) -> duckdb.DuckDBPyConnection:
    # Every statement is CREATE ... IF NOT EXISTS
    for ddl in ALL_TABLES:
        conn.execute(ddl)
    return conn


def init_market_db(db_path: str | Path) -> duckdb.DuckDBPyConnection:
    """Open the on-disk cache and make sure both tables exist."""
    conn = _apply_schema(get_connection(db_path))
    logger.info("Market data cache ready at %s", db_path)
    return conn


def init_memory_db() -> duckdb.DuckDBPyConnection:
    """Create a throwaway in-memory cache with the full schema."""
    return _apply_schema(get_connection(None))

"""Shared pytest fixtures for the market-data tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta

import duckdb
import pytest
from followinvest.db.connection import init_memory_db


class FakeClock:
    """Callable clock returning a settable naive-UTC time."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def db() -> Iterator[duckdb.DuckDBPyConnection]:
    """Provide an in-memory database with the market schema."""
    conn = init_memory_db()
    yield conn
    conn.close()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock fixed at 2024-06-03 12:00 UTC (a Monday)."""
    return FakeClock(datetime(2024, 6, 3, 12, 0, 0))

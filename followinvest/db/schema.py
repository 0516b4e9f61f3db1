"""DuckDB schema definitions for the market-data cache.

Contains DDL statements for:
- exchange_rates: One row per ordered currency pair
- security_prices: Daily OHLCV bar per symbol

"""

from __future__ import annotations

# ── Exchange Rates ──

CREATE_EXCHANGE_RATES = """
CREATE TABLE IF NOT EXISTS exchange_rates (
    from_currency  VARCHAR(3) NOT NULL,
    to_currency    VARCHAR(3) NOT NULL,
    rate           DECIMAL(18, 8) NOT NULL,
    last_updated   TIMESTAMP NOT NULL,
    created_at     TIMESTAMP NOT NULL,
    PRIMARY KEY    (from_currency, to_currency)
);
"""

# ── Security Prices ──

CREATE_SECURITY_PRICES = """
CREATE TABLE IF NOT EXISTS security_prices (
    symbol         VARCHAR(20) NOT NULL,
    price_date     DATE NOT NULL,
    open           DECIMAL(15, 4),
    high           DECIMAL(15, 4),
    low            DECIMAL(15, 4),
    close          DECIMAL(15, 4) NOT NULL,
    volume         BIGINT,
    currency       VARCHAR(3),
    exchange_name  VARCHAR(10),
    created_at     TIMESTAMP NOT NULL,
    updated_at     TIMESTAMP NOT NULL,
    PRIMARY KEY    (symbol, price_date)
);
"""

# All DDL statements in creation order
ALL_TABLES: list[str] = [
    CREATE_EXCHANGE_RATES,
    CREATE_SECURITY_PRICES,
]

"""JSON encoding for market-data values.

Decimals are written as strings so amounts survive the trip without
float rounding; dates and timestamps use ISO 8601.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class MarketDataEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date, datetime and Enum values."""

    def default(self, o: Any) -> Any:
        """Convert domain values to JSON-serializable Python types."""
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, datetime | date):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def dumps(value: Any) -> str:
    """Serialize ``value`` with ``MarketDataEncoder``."""
    return json.dumps(value, cls=MarketDataEncoder)

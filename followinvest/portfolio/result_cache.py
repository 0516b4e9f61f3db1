"""Short-lived cache for assembled aggregate views.

Dashboard views join every holding with resolved prices, which is too
expensive to redo on each page load. Views are stored serialized (JSON)
under a per-user scope with a fixed one-hour expiry. Any mutation of a
user's holdings must call ``invalidate_scope`` before returning.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from cachetools import TTLCache

from followinvest.serialization import dumps

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAXSIZE = 1024

# View kinds cached per user scope
SCOPED_VIEWS = ("dashboard", "accounts-performance")


def scope_key(view: str, scope: str | int) -> str:
    """Cache key for one view of one scope, e.g. ``dashboard:42``."""
    return f"{view}:{scope}"


class ResultCache:
    """TTL cache of JSON-serialized views.

    Args:
        ttl: Seconds before an entry expires.
        maxsize: Maximum number of entries; least recently used go first.
        timer: Monotonic clock in seconds (injectable for tests).

    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        maxsize: int = DEFAULT_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: TTLCache[str, str] = TTLCache(
            maxsize=maxsize, ttl=ttl, timer=timer
        )
        # TTLCache mutates on read (expiry), so every access is serialized
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the deserialized value for ``key``, or None if absent or expired."""
        with self._lock:
            raw = self._entries.get(key)
        if raw is None:
            logger.debug("Cache miss for key: %s", key)
            return None
        logger.debug("Cache hit for key: %s", key)
        return json.loads(raw)

    def _store(self, key: str, value: Any) -> str:
        raw = dumps(value)
        with self._lock:
            self._entries[key] = raw
        logger.debug("Cache set for key: %s", key)
        return raw

    def set(self, key: str, value: Any) -> None:
        """Serialize and store ``value`` under ``key``."""
        self._store(key, value)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        """Return the cached view, or compute, store and return it.

        The returned value is always the JSON round-trip of what
        ``compute`` produced, so hits and misses look identical.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        return json.loads(self._store(key, compute()))

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
        logger.debug("Cache removed for keys: %s", ", ".join(keys))

    def invalidate_scope(self, scope: str | int) -> None:
        """Drop every cached view belonging to ``scope``."""
        self.invalidate(*(scope_key(view, scope) for view in SCOPED_VIEWS))

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

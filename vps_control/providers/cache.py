"""
VPS Control Catalog Cache
=========================

Time-bounded, process-wide cache for vendor catalogs (regions, plans,
OS templates, ISOs). These change on the order of weeks, so a day-long TTL
avoids a round trip per lifecycle call without going permanently stale.

The loader runs outside the lock: two callers missing the same key at the
same time may both fetch. That only duplicates a read-only request.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


CATALOG_TTL = 60 * 60 * 24  # 24 hours


class CatalogCache:
    """Key -> (loaded_at, entries) store with per-call TTL."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[float, List[Any]]] = {}
        self._lock = threading.Lock()

    def get_or_load(self, key: str, ttl: float, loader: Callable[[], List[Any]]) -> List[Any]:
        """
        Return the cached catalog for ``key``, loading it when absent or expired.

        Args:
            key: Cache key, conventionally "<provider>:<catalog>"
            ttl: Maximum age in seconds of a usable entry
            loader: Zero-argument callable fetching the catalog remotely

        Returns:
            The catalog entries

        Raises:
            Whatever ``loader`` raises. Failed loads are not cached.
        """
        now = self._clock()
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None and now - cached[0] < ttl:
            return cached[1]

        logger.debug("Catalog cache miss: %s", key)
        entries = list(loader())

        with self._lock:
            self._entries[key] = (self._clock(), entries)
        return entries

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Shared by every adapter that isn't given its own cache
default_cache = CatalogCache()

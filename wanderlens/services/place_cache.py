"""
Short-lived in-process cache for place searches.

Entries are keyed by the quantized coordinate plus radius and mode, and are
valid while ``now - timestamp < ttl``; expired entries are purged on every
write. The cache also remembers the last good (non-empty) result for the most
recently active consumers, for use when every backend fails.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from wanderlens.config.settings import get_settings
from wanderlens.core.metrics import record_cache_hit, record_cache_miss
from wanderlens.services.geo import coordinate_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SearchCacheEntry(Generic[T]):
    key: str
    timestamp: float
    results: T


def make_cache_key(
    latitude: float,
    longitude: float,
    radius_meters: int,
    scope: str,
    precision: Optional[int] = None,
) -> str:
    if precision is None:
        precision = get_settings().places.cache_precision
    return f"{scope}:{coordinate_key(latitude, longitude, precision)}:{radius_meters}"


class SearchCache(Generic[T]):
    def __init__(
        self,
        name: str = "places",
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        max_consumers: Optional[int] = None,
    ):
        self.name = name
        self.ttl = ttl_seconds if ttl_seconds is not None else get_settings().places.cache_ttl_seconds
        self.clock = clock
        self.max_consumers = max_consumers or get_settings().places.max_tracked_consumers
        self._entries: dict[str, SearchCacheEntry[T]] = {}
        self._last_good: "OrderedDict[str, T]" = OrderedDict()

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is not None and self.clock() - entry.timestamp < self.ttl:
            record_cache_hit(self.name)
            return entry.results
        if entry is not None:
            del self._entries[key]
        record_cache_miss(self.name)
        return None

    def put(self, key: str, results: T) -> None:
        self.purge_expired()
        self._entries[key] = SearchCacheEntry(key=key, timestamp=self.clock(), results=results)

    def get_last_good(self, consumer: str) -> Optional[T]:
        return self._last_good.get(consumer)

    def set_last_good(self, consumer: str, results: T) -> None:
        self._last_good[consumer] = results
        self._last_good.move_to_end(consumer)
        while len(self._last_good) > self.max_consumers:
            self._last_good.popitem(last=False)

    def purge_expired(self) -> int:
        now = self.clock()
        expired = [k for k, e in self._entries.items() if now - e.timestamp >= self.ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired {self.name} cache entries")
        return len(expired)

    def reset(self) -> None:
        self._entries.clear()
        self._last_good.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "consumers": len(self._last_good),
            "ttl_seconds": self.ttl,
        }

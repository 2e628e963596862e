"""In-process TTL cache for record collections.

The pipeline owns one ``TTLCache`` instance and passes it around explicitly;
tests inject a fake clock to expire entries without sleeping.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple, TypeVar

from app.logging import get_logger

logger = get_logger(__name__, component="cache")

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    invalidations: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
        }


class TTLCache:
    """Thread-safe key -> (value, stored_at) map with a single TTL.

    Args:
        ttl_seconds: Lifetime of an entry; must be positive
        clock: Monotonic time source, ``time.monotonic`` by default
    """

    def __init__(self, ttl_seconds: float, clock: Optional[Clock] = None):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None if absent or expired. Expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.stats.expirations += 1
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Drop ``key``; True if it was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats.invalidations += 1
            return removed

    def clear(self) -> None:
        with self._lock:
            self.stats.invalidations += len(self._entries)
            self._entries.clear()

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since ``key`` was stored, or None."""
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else self._clock() - entry[1]

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() - entry[1] < self.ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_or_fetch(
    cache: Optional[TTLCache],
    key: Hashable,
    fetch: Callable[[], T],
    logger_instance: Optional[logging.Logger] = None,
) -> T:
    """Serve ``key`` from ``cache``, calling ``fetch`` on a miss.

    Failures inside the cache itself are logged and bypassed; errors raised
    by ``fetch`` propagate to the caller.
    """
    log = logger_instance or logger
    if cache is None:
        return fetch()

    try:
        cached = cache.get(key)
    except Exception as e:
        log.warning(
            f"Cache read failed for {key}, fetching directly: {e}",
            extra={"event": "cache.read.failed", "cache_key": str(key)},
        )
        return fetch()

    if cached is not None:
        log.debug(
            f"Cache hit for {key}",
            extra={"event": "cache.hit", "cache_key": str(key)},
        )
        return cached

    value = fetch()
    try:
        cache.set(key, value)
    except Exception as e:
        log.warning(
            f"Cache write failed for {key}: {e}",
            extra={"event": "cache.write.failed", "cache_key": str(key)},
        )
    return value

"""
In-process TTL + LRU cache for expensive spreadsheet reads.

One instance is built per process by the app factory and handed to the
route handlers; nothing here is a module-level singleton.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from cachetools import TTLCache

from helper_tracker.config import CACHE_MAX_ENTRIES, CACHE_TTL_MINUTES

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class CacheKeys:
    HELPERS = "helpers"
    USERS = "users"
    INCIDENTS = "incidents"
    STAFF = "staff"
    DASHBOARD_METRICS = "dashboard-metrics"

    @staticmethod
    def helper_incidents(helper_id: str) -> str:
        return f"helper-incidents-{helper_id}"

    @staticmethod
    def helper_profile(helper_id: str) -> str:
        return f"helper-profile-{helper_id}"


class AppCache(Generic[T]):
    """
    Bounded key/value cache with time-based expiry and LRU capacity eviction.

    Reads never extend an entry's lifetime; a write resets it. Expired
    entries are dropped lazily by the underlying ``cachetools.TTLCache``.

    ``get_or_set`` does not deduplicate concurrent misses: two requests racing
    on the same cold key will both call their fetcher.
    """

    def __init__(
        self,
        ttl_minutes: float = CACHE_TTL_MINUTES,
        max_entries: int = CACHE_MAX_ENTRIES,
        timer: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.ttl_seconds = ttl_minutes * 60
        self.max_entries = max_entries
        self._timer = timer
        # Values are stored as (value, written_at) so remaining TTL can be reported.
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=self.ttl_seconds, timer=timer)
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def _entry(self, key: str) -> Optional[Tuple[T, float]]:
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._cache[key] = (value, self._timer())

    def get(self, key: str) -> Optional[T]:
        entry = self._entry(key)
        return entry[0] if entry is not None else None

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._cache:
                return False
            del self._cache[key]
            return True

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def get_or_set(self, key: str, fetcher: Callable[[], T]) -> T:
        """Return the cached value for *key*, or fetch, store and return it."""
        entry = self._entry(key)
        if entry is not None:
            with self._lock:
                self._hits += 1
            LOG.debug("Cache HIT: %s", key)
            return entry[0]

        with self._lock:
            self._misses += 1
        LOG.debug("Cache MISS: %s - fetching from source", key)
        try:
            value = fetcher()
        except Exception:
            LOG.error("Cache fetch failed for %s", key, exc_info=True)
            raise
        self.set(key, value)
        return value

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every entry whose key contains *pattern* (plain substring)."""
        with self._lock:
            matching = [k for k in list(self._cache.keys()) if pattern in k]
            for k in matching:
                self._cache.pop(k, None)
        LOG.info('Invalidated %d cache entries matching "%s"', len(matching), pattern)
        return len(matching)

    def remaining_ttl(self, key: str) -> float:
        """Seconds left before *key* expires; 0 when absent."""
        entry = self._entry(key)
        if entry is None:
            return 0.0
        return max(0.0, self.ttl_seconds - (self._timer() - entry[1]))

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._cache.expire()
            return {
                "size": len(self._cache),
                "max_size": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "keys": sorted(self._cache.keys()),
            }


# ── Invalidation groups ──────────────────────────────────────────────

def invalidate_all(cache: AppCache) -> None:
    cache.clear()
    LOG.info("All cache cleared")


def invalidate_helpers(cache: AppCache) -> None:
    cache.delete(CacheKeys.HELPERS)
    cache.delete(CacheKeys.DASHBOARD_METRICS)
    cache.invalidate_pattern("helper-")
    LOG.info("Helper-related cache cleared")


def invalidate_users(cache: AppCache) -> None:
    cache.delete(CacheKeys.USERS)
    cache.delete(CacheKeys.DASHBOARD_METRICS)
    LOG.info("User-related cache cleared")


def invalidate_incidents(cache: AppCache) -> None:
    cache.delete(CacheKeys.INCIDENTS)
    cache.invalidate_pattern("helper-incidents-")
    LOG.info("Incident-related cache cleared")


INVALIDATION_GROUPS: Dict[str, Callable[[AppCache], None]] = {
    "all": invalidate_all,
    "helpers": invalidate_helpers,
    "users": invalidate_users,
    "incidents": invalidate_incidents,
}

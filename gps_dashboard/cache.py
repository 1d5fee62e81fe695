"""
In-memory data cache to avoid redundant store reads within a short window.
"""
import threading
import time
from collections import OrderedDict

from gps_dashboard.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIZE = 50


class InstantCache:
    """
    Bounded key -> value map with per-entry TTL.

    When full, the oldest inserted entry is evicted. Expired entries are
    dropped on access and by cleanup(), which the background scheduler runs.
    """

    def __init__(self, max_size=DEFAULT_MAX_SIZE, default_ttl=DEFAULT_TTL_SECONDS, clock=time.monotonic):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries = OrderedDict()  # key -> (value, stored_at, ttl)
        self._lock = threading.Lock()

    def _expired(self, entry, now):
        _, stored_at, ttl = entry
        return now - stored_at > ttl

    def set(self, key, value, ttl=None):
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (value, self._clock(), self.default_ttl if ttl is None else ttl)

    def get(self, key, default=None):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return default
            return entry[0]

    def has(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return False
            return True

    def invalidate(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix):
        with self._lock:
            for key in [k for k in self._entries if str(k).startswith(prefix)]:
                del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()

    def size(self):
        with self._lock:
            return len(self._entries)

    def cleanup(self):
        """Drop expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if self._expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cache cleanup removed expired entries", removed=len(expired))
        return len(expired)


# Global cache instance
instant_cache = InstantCache()


def with_instant_cache(key, fetcher, ttl=None, cache=None):
    """
    Wrap a fetcher so repeated calls within the TTL are served from the cache.

    Fetch errors propagate and nothing is cached.
    """
    if cache is None:
        cache = instant_cache

    def cached_fetch():
        sentinel = object()
        cached = cache.get(key, sentinel)
        if cached is not sentinel:
            logger.debug(f"Cache hit for {key}")
            return cached

        data = fetcher()
        cache.set(key, data, ttl)
        logger.debug(f"Cache miss, fetched and cached {key}")
        return data

    return cached_fetch

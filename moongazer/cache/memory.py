"""In-memory TTL cache with single-flight misses."""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from moongazer.cache.base import Cache, Codec, KeyedLocks
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/in_memory_cache")

T = TypeVar("T")


class InMemoryCache(Cache):
    """Thread-safe, TTL-aware process-local cache."""

    def __init__(self, max_entries: int | None = 2048, clock: Callable[[], float] = time.monotonic) -> None:
        """`max_entries` bounds memory; the soonest-expiring entries are evicted first."""
        logger.debug("Initializing InMemoryCache")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._inflight = KeyedLocks()

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        """Return (hit, value), dropping the entry if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            expires_at, value = entry
            if expires_at <= self._clock():
                self._entries.pop(key, None)
                return False, None
            return True, value

    def _store(self, key: str, ttl_seconds: int, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)
            if self.max_entries is not None and len(self._entries) > self.max_entries:
                self._evict()

    def _evict(self) -> None:
        """Drop expired entries, then the soonest-expiring ones, until under the cap."""
        now = self._clock()
        for k in [k for k, (exp, _v) in self._entries.items() if exp <= now]:
            self._entries.pop(k, None)
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            for k, _entry in sorted(self._entries.items(), key=lambda kv: kv[1][0])[:overflow]:
                self._entries.pop(k, None)

    def get_or_compute(self, key: str, ttl_seconds: int, producer: Callable[[], T],
                       codec: Optional[Codec[T]] = None) -> T:
        """Return a fresh cached value, or run `producer` once for all concurrent callers."""
        hit, value = self._lookup(key)
        if hit:
            return value
        with self._inflight.hold(key):
            # Another caller may have filled the key while we waited.
            hit, value = self._lookup(key)
            if hit:
                logger.debug("Cache filled by concurrent caller", extra={"key": key})
                return value
            logger.debug("Cache miss", extra={"key": key})
            value = producer()
            self._store(key, ttl_seconds, value)
            return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

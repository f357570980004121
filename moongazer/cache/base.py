"""Shared protocol, codec type and per-key locking for cache backends."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterator, Optional, Protocol, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Codec(Generic[T]):
    """JSON-safe conversion for backends that store bytes (Redis)."""
    dump: Callable[[T], Any]
    load: Callable[[Any], T]


class Cache(Protocol):
    """Keyed TTL store with get-or-compute semantics."""

    def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        producer: Callable[[], T],
        codec: Optional[Codec[T]] = None,
    ) -> T:
        """Return the cached value for `key`, calling `producer` at most once per miss."""

    def invalidate(self, key: str) -> None:
        """Drop a key if present."""

    def clear(self) -> None:
        """Drop every key."""


class KeyedLocks:
    """One lock per key, created on demand and discarded when nobody holds it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    self._waiters.pop(key, None)
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

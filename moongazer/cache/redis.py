"""Redis-backed cache with TTL. Values are stored as JSON via per-call codecs."""

import json
from typing import Any, Callable, Optional, TypeVar

from moongazer.cache.base import Cache, Codec, KeyedLocks
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/redis_cache")

T = TypeVar("T")


class RedisCache(Cache):
    """Shared cache across processes; misses are single-flight within this process."""

    def __init__(self, client, prefix: str = "moongazer:") -> None:
        """Wrap a redis-py client; every key is namespaced with `prefix`."""
        logger.debug("Initializing RedisCache")
        self.client = client
        self.prefix = prefix
        self._inflight = KeyedLocks()

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _read(self, key: str, codec: Optional[Codec[T]]) -> tuple[bool, Any]:
        """Return (hit, value); read or decode failures count as a miss."""
        try:
            raw = self.client.get(self._key(key))
        except Exception as exc:  # pragma: no cover - network failure
            logger.warning("Redis read failed; treating as miss", extra={"key": key, "error": str(exc)})
            return False, None
        if raw is None:
            return False, None
        try:
            data = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
            return True, codec.load(data) if codec else data
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding undecodable cache entry", extra={"key": key, "error": str(exc)})
            self.invalidate(key)
            return False, None

    def _write(self, key: str, ttl_seconds: int, value: Any, codec: Optional[Codec[T]]) -> None:
        try:
            payload = json.dumps(codec.dump(value) if codec else value).encode("utf-8")
            self.client.setex(self._key(key), int(ttl_seconds), payload)
        except Exception as exc:  # pragma: no cover - network failure
            logger.warning("Redis write failed; value not cached", extra={"key": key, "error": str(exc)})

    def get_or_compute(self, key: str, ttl_seconds: int, producer: Callable[[], T],
                       codec: Optional[Codec[T]] = None) -> T:
        """Return the cached value, or run `producer` once per key per process."""
        hit, value = self._read(key, codec)
        if hit:
            return value
        with self._inflight.hold(key):
            hit, value = self._read(key, codec)
            if hit:
                return value
            value = producer()
            self._write(key, ttl_seconds, value, codec)
            return value

    def invalidate(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except Exception as exc:  # pragma: no cover - network failure
            logger.error("Failed to delete cache key from Redis: %s", exc)

    def clear(self) -> None:
        """Best-effort clear for all keys under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:  # pragma: no cover - network failure
            logger.error("Failed to clear cache keys from Redis: %s", exc)

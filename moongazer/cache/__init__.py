"""Cache backends."""

from .base import Cache, Codec, KeyedLocks
from .memory import InMemoryCache
from .redis import RedisCache

__all__ = [
    "Cache",
    "Codec",
    "KeyedLocks",
    "InMemoryCache",
    "RedisCache",
]

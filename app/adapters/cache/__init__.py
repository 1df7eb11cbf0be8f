"""Lookup cache backends.

The lookup cache talks to a small interface so the shared Redis backend can
be swapped for a per-process one (local development, single worker) without
touching the cache-aside logic.
"""

from app.adapters.cache.base import AbstractCacheBackend, CacheBackendError
from app.adapters.cache.factory import create_cache_backend
from app.adapters.cache.in_memory import InMemoryTTLCache
from app.adapters.cache.redis_cache import RedisCacheBackend

__all__ = [
    "AbstractCacheBackend",
    "CacheBackendError",
    "InMemoryTTLCache",
    "RedisCacheBackend",
    "create_cache_backend",
]

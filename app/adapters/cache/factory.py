"""Factory for lookup cache backends."""

from redis.asyncio import Redis

from app.adapters.cache.base import AbstractCacheBackend
from app.adapters.cache.in_memory import InMemoryTTLCache
from app.adapters.cache.redis_cache import RedisCacheBackend
from app.core.config import StoreSettings, settings
from app.core.errors import ValidationAppError


def create_cache_backend(redis: Redis, store_settings: StoreSettings | None = None) -> AbstractCacheBackend:
    """Instantiate the configured cache backend.

    Args:
        redis: Shared client, used by the ``redis`` backend.
        store_settings: Optional override; defaults to ``settings.store``.

    Returns:
        AbstractCacheBackend: Configured backend.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.cache_backend.lower()

    if backend == "redis":
        return RedisCacheBackend(redis, prefix=cfg.cache_prefix)

    if backend == "memory":
        return InMemoryTTLCache(max_entries=cfg.cache_max_entries)

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=f"Unknown cache backend: '{backend}'. Supported backends: redis, memory",
    )

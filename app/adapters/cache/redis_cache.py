"""Redis-backed lookup cache (shared across workers)."""

from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.cache.base import AbstractCacheBackend, CacheBackendError


class RedisCacheBackend(AbstractCacheBackend):
    """Stores JSON payloads as plain strings with ``SET ... EX``.

    Overwriting an expired or stale key is a single ``SET``; there is no
    separate delete step.
    """

    def __init__(self, redis: Redis, *, prefix: str = "num") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as exc:
            raise CacheBackendError(str(exc)) from exc
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            return None
        return value if isinstance(value, dict) else None

    async def set(self, key: str, value: dict[str, Any], *, ttl_seconds: int) -> None:
        try:
            await self._redis.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except RedisError as exc:
            raise CacheBackendError(str(exc)) from exc

"""Factory for the asyncio Redis client shared by every core component."""

from __future__ import annotations

import logging

from redis.asyncio import Redis

from app.core.config import RedisSettings, settings

logger = logging.getLogger(__name__)


def create_redis_client(redis_settings: RedisSettings | None = None) -> Redis:
    """Instantiate an asyncio Redis client from configuration.

    The client connects lazily on first command, so building it never blocks
    application start-up. Responses are decoded to ``str``; every value the
    service stores is text (JSON or integer strings).

    Args:
        redis_settings: Optional override; defaults to ``settings.redis``.

    Returns:
        Redis: Configured client owning its own connection pool.
    """
    cfg = redis_settings or settings.redis

    client = Redis.from_url(
        cfg.url,
        decode_responses=True,
        socket_timeout=cfg.socket_timeout_seconds,
        socket_connect_timeout=cfg.socket_connect_timeout_seconds,
    )
    logger.info(
        "redis.client_created",
        extra={
            "socket_timeout_s": cfg.socket_timeout_seconds,
            "connect_timeout_s": cfg.socket_connect_timeout_seconds,
        },
    )
    return client

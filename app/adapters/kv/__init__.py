"""Key-value backend adapter - builds the shared asyncio Redis client."""

from app.adapters.kv.factory import create_redis_client

__all__ = ["create_redis_client"]

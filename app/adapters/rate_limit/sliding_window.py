"""Redis sliding-window rate limiter.

Each API key owns a sorted set (``ratelimit:{key}``) of request timestamps in
epoch milliseconds. On every check the entries older than the window are
pruned; the remaining cardinality is the number of requests in the trailing
window.

Notes:
- Shared across workers through Redis.
- Best effort under concurrency: prune/count and insert are two round trips,
  so a burst can over- or under-count by a few requests.
- Rate limiting is a protective heuristic. With the default ``open`` failure
  policy a Redis outage lets requests through instead of failing them.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from typing import Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.core.config import FailurePolicy
from app.core.errors import StoreUnavailableError
from app.core.logging import fingerprint

logger = logging.getLogger(__name__)


class RedisSlidingWindowRateLimiter(AbstractRateLimiter):
    """Bounds requests per key inside a trailing window of fixed length."""

    def __init__(
        self,
        redis: Redis,
        *,
        max_requests: int = 60,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit",
        failure_policy: FailurePolicy = FailurePolicy.OPEN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            redis: Shared asyncio Redis client.
            max_requests: Requests allowed per window.
            window_seconds: Window length in seconds.
            key_prefix: Namespace for the per-key sorted sets.
            failure_policy: What to do when Redis cannot be reached.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If max_requests or window_seconds are invalid.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._redis = redis
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._prefix = key_prefix
        self.failure_policy = failure_policy
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _on_backend_failure(self, key: str, now: float, exc: RedisError) -> RateLimitResult:
        logger.warning(
            "rate_limit.backend_unavailable",
            extra={
                "key_hash": fingerprint(key),
                "error_type": type(exc).__name__,
                "failure_policy": self.failure_policy.value,
            },
        )
        if self.failure_policy is FailurePolicy.OPEN:
            return RateLimitResult(
                allowed=True,
                limit=self._max_requests,
                remaining=self._max_requests,
                reset_at=int(now) + self._window_seconds,
                retry_after_seconds=None,
                degraded=True,
            )
        raise StoreUnavailableError(
            code="rate_limiter_unavailable",
            message="Unable to evaluate rate limit. Try again later.",
            details={"component": "limiter"},
        ) from exc

    async def allow(self, key: str) -> RateLimitResult:
        """Check the trailing window for ``key`` and record this request.

        Args:
            key: Unique identifier for rate limiting (the API key).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
            StoreUnavailableError: If Redis fails and the policy is closed.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = self._window_seconds * 1000
        redis_key = self._key(key)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(redis_key, 0, now_ms - window_ms)
                pipe.zcard(redis_key)
                _, count = await pipe.execute()

            if count >= self._max_requests:
                oldest = await self._redis.zrange(redis_key, 0, 0, withscores=True)
                oldest_ms = int(oldest[0][1]) if oldest else now_ms
                return self._build_blocked_result(now_ms=now_ms, oldest_ms=oldest_ms)

            member = f"{now_ms}-{uuid.uuid4().hex[:12]}"
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(redis_key, {member: now_ms})
                pipe.expire(redis_key, self._window_seconds)
                await pipe.execute()
        except RedisError as exc:
            return self._on_backend_failure(key, now, exc)

        return RateLimitResult(
            allowed=True,
            limit=self._max_requests,
            remaining=max(0, self._max_requests - count - 1),
            reset_at=int(math.ceil(now)) + self._window_seconds,
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, *, now_ms: int, oldest_ms: int) -> RateLimitResult:
        """Build a RateLimitResult for a blocked request.

        The next slot frees up when the oldest surviving timestamp leaves
        the window.
        """
        frees_at_ms = oldest_ms + self._window_seconds * 1000
        retry_after = max(1, int(math.ceil((frees_at_ms - now_ms) / 1000)))
        return RateLimitResult(
            allowed=False,
            limit=self._max_requests,
            remaining=0,
            reset_at=int(math.ceil(frees_at_ms / 1000)),
            retry_after_seconds=retry_after,
        )

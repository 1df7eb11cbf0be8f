"""Rate limiting adapters.

The admission gate depends on ``AbstractRateLimiter`` only; the Redis
sliding-window limiter is the production implementation.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.sliding_window import RedisSlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "RateLimitResult",
    "RedisSlidingWindowRateLimiter",
]

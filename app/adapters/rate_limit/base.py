"""Rate limiter interfaces.

The admission layer depends on this abstraction, not on a storage backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when a slot frees up.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        degraded: True when the backend failed and the request was let
            through without being counted.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    degraded: bool = False


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def allow(self, key: str) -> RateLimitResult:
        """Check the budget for ``key`` and record the request if allowed.

        Args:
            key: Unique identifier (the caller's API key).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

"""Cache backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CacheBackendError(Exception):
    """Raised by a backend that could not serve a get/set."""


class AbstractCacheBackend(ABC):
    """Interface for JSON-value caches with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored payload, or None when absent or expired.

        Raises:
            CacheBackendError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: dict[str, Any], *, ttl_seconds: int) -> None:
        """Store (or overwrite) a payload that expires after ``ttl_seconds``.

        Raises:
            CacheBackendError: If the backend cannot be reached.
        """
        raise NotImplementedError

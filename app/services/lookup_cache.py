"""Cache-aside lookups in front of the partitioned record store.

Reads check the cache, fall through to the store on a miss and repopulate
the cache. Writes never go through here; stale entries age out by TTL.

Each cache entry carries its own ``inserted_at`` stamp and is checked
against the TTL on read, so an entry is never served past its lifetime even
if the backend's own expiry lags.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from pydantic import ValidationError

from app.adapters.cache.base import AbstractCacheBackend, CacheBackendError
from app.core.logging import fingerprint
from app.schemas.record import Record
from app.services.record_store import PartitionedRecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupResult:
    """A found record and whether it came from the cache."""

    record: Record
    from_cache: bool


class LookupCache:
    """Cache-aside wrapper around ``PartitionedRecordStore.get``.

    Negative results are not cached: a number absent now may be loaded a
    minute later and must become visible without an invalidation path.

    Concurrent misses for the same key may each populate the entry; the last
    write wins, which is harmless because all of them read the same record.
    """

    def __init__(
        self,
        store: PartitionedRecordStore,
        backend: AbstractCacheBackend,
        *,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        self._store = store
        self._backend = backend
        self._ttl = ttl_seconds
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _read_cached(self, key: str) -> Record | None:
        try:
            entry = await self._backend.get(key)
        except CacheBackendError as exc:
            logger.warning(
                "cache.backend_unavailable",
                extra={"operation": "get", "error_msg": str(exc)},
            )
            return None

        if not entry:
            logger.debug("cache.miss", extra={"number_hash": fingerprint(key), "reason": "not_found"})
            return None

        inserted_at = entry.get("inserted_at")
        if not isinstance(inserted_at, int) or self._now_ms() - inserted_at > self._ttl * 1000:
            logger.debug("cache.miss", extra={"number_hash": fingerprint(key), "reason": "expired"})
            return None

        try:
            return Record.model_validate(entry.get("record") or {})
        except ValidationError:
            logger.warning("cache.corrupt_entry", extra={"number_hash": fingerprint(key)})
            return None

    async def _populate(self, key: str, record: Record) -> None:
        entry = {
            "record": record.model_dump(by_alias=True, exclude_none=True),
            "inserted_at": self._now_ms(),
        }
        try:
            await self._backend.set(key, entry, ttl_seconds=self._ttl)
        except CacheBackendError as exc:
            logger.warning(
                "cache.backend_unavailable",
                extra={"operation": "set", "error_msg": str(exc)},
            )

    async def get_or_populate(self, key: str) -> LookupResult | None:
        """Return the record for ``key``, consulting the cache first.

        Args:
            key: Validated record key.

        Returns:
            LookupResult tagged with ``from_cache``, or None when the store
            has no record for the key.

        Raises:
            StoreUnavailableError: If the store cannot be read on a miss.
        """
        cached = await self._read_cached(key)
        if cached is not None:
            logger.debug("cache.hit", extra={"number_hash": fingerprint(key)})
            return LookupResult(record=cached, from_cache=True)

        record = await self._store.get(key)
        if record is None:
            return None

        await self._populate(key, record)
        return LookupResult(record=record, from_cache=False)

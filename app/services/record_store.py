"""Partitioned record store backed by Redis hashes.

Each shard is one hash (``part:{id}``) whose fields are record keys and whose
values are JSON-encoded records. Keeping shards small keeps ``HGET`` cheap
and spreads hot keys over many Redis keys.

Backend failures are surfaced as ``StoreUnavailableError`` and never retried
here: a bulk loader and an interactive lookup want different retry policies.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import AsyncIterator, Iterable

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.errors import StoreUnavailableError
from app.core.logging import fingerprint
from app.schemas.record import Record
from app.services.partitioning import partition_key, partition_of, validate_record_key

logger = logging.getLogger(__name__)


def encode_record(record: Record) -> str:
    """Serialize a record for storage, dropping empty fields."""
    return json.dumps(record.model_dump(by_alias=True, exclude_none=True), separators=(",", ":"))


def decode_record(raw: str) -> Record | None:
    """Parse a stored record; returns None for corrupt payloads."""
    try:
        return Record.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        return None


class PartitionedRecordStore:
    """Bulk-write and point-read access to the sharded record set.

    Attributes:
        partition_count: Number of shards (fixed for the life of the data).
        prefix: Key prefix for shard hashes.
    """

    def __init__(self, redis: Redis, *, partition_count: int, prefix: str = "part") -> None:
        if partition_count < 1:
            raise ValueError("partition_count must be >= 1")
        self._redis = redis
        self.partition_count = partition_count
        self.prefix = prefix

    def shard_for(self, key: str) -> str:
        """Return the shard hash name holding ``key``."""
        return partition_key(partition_of(key, self.partition_count), self.prefix)

    def _unavailable(self, operation: str, exc: RedisError) -> StoreUnavailableError:
        logger.error(
            "store.unavailable",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message="Record store is temporarily unavailable",
            details={"component": "store"},
        )

    async def put_batch(self, entries: Iterable[tuple[str, Record]]) -> int:
        """Write a batch of records, one ``HSET`` per touched shard.

        Entries are grouped by shard and sent in a single pipeline. Writing
        the same key twice (in one batch or across batches) keeps the last
        value.

        Args:
            entries: ``(record_key, record)`` pairs.

        Returns:
            Number of distinct keys written.

        Raises:
            ValidationAppError: If a key is malformed (nothing is written).
            StoreUnavailableError: If the backend fails.
        """
        by_shard: dict[str, dict[str, str]] = defaultdict(dict)
        for raw_key, record in entries:
            key = validate_record_key(raw_key)
            by_shard[self.shard_for(key)][key] = encode_record(record)

        if not by_shard:
            return 0

        written = sum(len(fields) for fields in by_shard.values())
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                for shard, fields in by_shard.items():
                    pipe.hset(shard, mapping=fields)
                await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("put_batch", exc) from exc

        logger.info(
            "store.batch_written",
            extra={"records": written, "shards": len(by_shard)},
        )
        return written

    async def get(self, key: str) -> Record | None:
        """Point-read a record.

        Args:
            key: Validated record key.

        Returns:
            The record, or None when the key is absent.

        Raises:
            StoreUnavailableError: If the backend fails.
        """
        shard = self.shard_for(key)
        try:
            raw = await self._redis.hget(shard, key)
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

        if raw is None:
            return None

        record = decode_record(raw)
        if record is None:
            logger.warning("store.corrupt_record", extra={"number_hash": fingerprint(key), "shard": shard})
        return record

    async def iter_partition(
        self, partition_id: int, *, scan_count: int = 500
    ) -> AsyncIterator[tuple[str, Record]]:
        """Iterate over every ``(key, record)`` in one shard via ``HSCAN``.

        Raises:
            StoreUnavailableError: If the backend fails mid-scan.
        """
        shard = partition_key(partition_id, self.prefix)
        try:
            async for key, raw in self._redis.hscan_iter(shard, count=scan_count):
                record = decode_record(raw)
                if record is not None:
                    yield key, record
        except RedisError as exc:
            raise self._unavailable("scan", exc) from exc

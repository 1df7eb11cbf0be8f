"""Tests for the partitioned record store."""

import json

import pytest

from app.core.errors import StoreUnavailableError, ValidationAppError
from app.schemas.record import Record
from app.services.partitioning import partition_of
from app.services.record_store import PartitionedRecordStore
from tests.fake_redis import FakeRedis


@pytest.fixture
def store(fake_redis: FakeRedis) -> PartitionedRecordStore:
    return PartitionedRecordStore(fake_redis, partition_count=1000)


@pytest.mark.asyncio
async def test_put_batch_then_get_round_trips(store: PartitionedRecordStore, fake_redis: FakeRedis, sample_record: Record) -> None:
    written = await store.put_batch([("9876543210", sample_record)])

    assert written == 1
    shard = f"part:{partition_of('9876543210', 1000)}"
    assert shard == "part:525"
    stored = json.loads(fake_redis.dump(shard)["9876543210"])
    assert stored["name"] == "Asha Verma"
    assert stored["fathersName"] == "Ravi Verma"
    assert "passportNumber" not in stored  # empty fields are not stored

    assert await store.get("9876543210") == sample_record


@pytest.mark.asyncio
async def test_reads_camel_case_payload_written_by_loader(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    payload = {
        "name": "Asha Verma",
        "fathersName": "Ravi Verma",
        "phoneNumber": "9876543210",
        "otherNumber": "9123456789",
        "passportNumber": "K1234567",
        "aadharNumber": "123412341234",
        "town": "Pune",
        "source": "db3",
    }
    fake_redis._hset(store.shard_for("9876543210"), mapping={"9876543210": json.dumps(payload)})

    record = await store.get("9876543210")

    assert record.fathers_name == "Ravi Verma"
    assert record.phone_number == "9876543210"
    assert record.other_number == "9123456789"
    assert record.passport_number == "K1234567"
    assert record.aadhar_number == "123412341234"


@pytest.mark.asyncio
async def test_get_missing_key_returns_none(store: PartitionedRecordStore) -> None:
    assert await store.get("9123456789") is None


@pytest.mark.asyncio
async def test_batch_issues_one_hset_per_shard(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    # 9876543210 and 9876543201 share a checksum, 6000000000 does not
    entries = [
        ("9876543210", Record(name="a")),
        ("9876543201", Record(name="b")),
        ("6000000000", Record(name="c")),
    ]

    written = await store.put_batch(entries)

    assert written == 3
    assert fake_redis.calls.count("hset") == 2


@pytest.mark.asyncio
async def test_last_write_wins_within_and_across_batches(store: PartitionedRecordStore) -> None:
    await store.put_batch([("9876543210", Record(name="first")), ("9876543210", Record(name="second"))])
    assert (await store.get("9876543210")).name == "second"

    await store.put_batch([("9876543210", Record(name="third", source="db9"))])
    record = await store.get("9876543210")
    assert record.name == "third"
    assert record.source == "db9"


@pytest.mark.asyncio
async def test_put_batch_is_idempotent(store: PartitionedRecordStore, sample_record: Record) -> None:
    batch = [("9876543210", sample_record)]
    await store.put_batch(batch)
    await store.put_batch(batch)

    assert await store.get("9876543210") == sample_record


@pytest.mark.asyncio
async def test_empty_batch_writes_nothing(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    assert await store.put_batch([]) == 0
    assert fake_redis.calls == []


@pytest.mark.asyncio
async def test_invalid_key_rejects_whole_batch(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    with pytest.raises(ValidationAppError):
        await store.put_batch([("9876543210", Record(name="ok")), ("0000000000", Record(name="bad"))])

    assert fake_redis.calls == []


@pytest.mark.asyncio
async def test_backend_failure_is_surfaced_not_retried(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    fake_redis.fail_commands = {"hget"}

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.get("9876543210")

    assert exc_info.value.details == {"component": "store"}
    assert fake_redis.calls == []


@pytest.mark.asyncio
async def test_batch_backend_failure(store: PartitionedRecordStore, fake_redis: FakeRedis, sample_record: Record) -> None:
    fake_redis.fail_commands = {"pipeline"}

    with pytest.raises(StoreUnavailableError):
        await store.put_batch([("9876543210", sample_record)])


@pytest.mark.asyncio
async def test_corrupt_payload_reads_as_missing(store: PartitionedRecordStore, fake_redis: FakeRedis) -> None:
    fake_redis._hset("part:525", "9876543210", "{not json")

    assert await store.get("9876543210") is None


@pytest.mark.asyncio
async def test_iter_partition_yields_records(store: PartitionedRecordStore, sample_record: Record) -> None:
    await store.put_batch([("9876543210", sample_record), ("9876543201", Record(name="other"))])

    rows = [row async for row in store.iter_partition(525)]

    assert sorted(key for key, _ in rows) == ["9876543201", "9876543210"]


def test_rejects_invalid_partition_count(fake_redis: FakeRedis) -> None:
    with pytest.raises(ValueError):
        PartitionedRecordStore(fake_redis, partition_count=0)

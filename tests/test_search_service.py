"""Tests for substring search across shards."""

import pytest
import pytest_asyncio

from app.core.errors import StoreUnavailableError, ValidationAppError
from app.schemas.record import Record
from app.services.record_store import PartitionedRecordStore
from app.services.search_service import ALL_FIELDS, SearchService
from tests.fake_redis import FakeRedis

RECORDS = [
    ("9876543210", Record(name="Asha Verma", district="Pune", state="Maharashtra")),
    ("9123456789", Record(name="Ravi Kumar", fathers_name="Mohan Verma", district="Patna")),
    ("8000000001", Record(name="Meera Nair", district="Kochi", state="Kerala")),
    ("7000000002", Record(name="Arjun Rao", address="4 Verma Street", district="Pune")),
]


@pytest_asyncio.fixture
async def store(fake_redis: FakeRedis) -> PartitionedRecordStore:
    store = PartitionedRecordStore(fake_redis, partition_count=10)
    await store.put_batch(RECORDS)
    return store


@pytest.mark.asyncio
async def test_matches_any_field_case_insensitively(store: PartitionedRecordStore) -> None:
    page = await SearchService(store).search("VERMA")

    assert page.field == ALL_FIELDS
    assert page.total_results == 3
    assert {key for key, _ in page.results} == {"9876543210", "9123456789", "7000000002"}
    assert page.truncated is False


@pytest.mark.asyncio
async def test_field_restricts_matching(store: PartitionedRecordStore) -> None:
    page = await SearchService(store).search("verma", "name")

    assert page.field == "name"
    assert [key for key, _ in page.results] == ["9876543210"]


@pytest.mark.asyncio
async def test_query_is_echoed_trimmed(store: PartitionedRecordStore) -> None:
    page = await SearchService(store).search("  pune ", "district")

    assert page.query == "pune"
    assert page.total_results == 2


@pytest.mark.asyncio
async def test_pagination_slices_matches(store: PartitionedRecordStore) -> None:
    service = SearchService(store)

    first = await service.search("a", page=1, limit=3)
    second = await service.search("a", page=2, limit=3)

    assert first.total_results == 4
    assert first.total_pages == 2
    assert len(first.results) == 3
    assert len(second.results) == 1
    assert {k for k, _ in first.results} | {k for k, _ in second.results} == {k for k, _ in RECORDS}


@pytest.mark.asyncio
async def test_stops_at_max_matches(store: PartitionedRecordStore) -> None:
    page = await SearchService(store, max_matches=2).search("a")

    assert page.truncated is True
    assert page.total_results == 2


@pytest.mark.asyncio
async def test_no_matches(store: PartitionedRecordStore) -> None:
    page = await SearchService(store).search("zzz")

    assert page.total_results == 0
    assert page.total_pages == 0
    assert page.results == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("query", "field", "page", "limit", "code"),
    [
        (None, None, 1, 50, "missing_query"),
        ("   ", None, 1, 50, "missing_query"),
        ("x", "source", 1, 50, "invalid_search_field"),
        ("x", "salary", 1, 50, "invalid_search_field"),
        ("x", None, 0, 50, "invalid_pagination"),
        ("x", None, 1, 0, "invalid_pagination"),
        ("x", None, 1, 101, "invalid_pagination"),
    ],
)
async def test_invalid_requests_rejected(
    store: PartitionedRecordStore, query, field, page, limit, code
) -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        await SearchService(store).search(query, field, page=page, limit=limit)

    assert exc_info.value.code == code


@pytest.mark.asyncio
async def test_scan_failure_surfaces_as_store_unavailable(
    fake_redis: FakeRedis, store: PartitionedRecordStore
) -> None:
    fake_redis.fail_commands = {"hscan"}

    with pytest.raises(StoreUnavailableError):
        await SearchService(store).search("verma")


@pytest.mark.asyncio
async def test_exactly_max_matches_is_not_truncated(store: PartitionedRecordStore) -> None:
    page = await SearchService(store, max_matches=2).search("pune", "district")

    assert page.total_results == 2
    assert page.truncated is False


@pytest.mark.asyncio
async def test_matches_camel_case_payload_fields(fake_redis: FakeRedis, store: PartitionedRecordStore) -> None:
    fake_redis._hset(
        store.shard_for("6111111111"),
        mapping={"6111111111": '{"name":"Kiran Das","fathersName":"Suresh Das","aadharNumber":"999988887777"}'},
    )

    by_father = await SearchService(store).search("suresh", "fathers_name")
    by_aadhar = await SearchService(store).search("99998888", "aadhar_number")

    assert [key for key, _ in by_father.results] == ["6111111111"]
    assert [key for key, _ in by_aadhar.results] == ["6111111111"]

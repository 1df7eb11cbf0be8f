"""Unit tests for the quota ledger (credential lookup and consumption)."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import FailurePolicy
from app.core.errors import StoreUnavailableError, UnknownCredentialError
from app.core.logging import fingerprint
from app.services.quota_ledger import Credential, QuotaLedger, QuotaOutcome
from tests.fake_redis import FakeRedis
from tests.helpers import FakeClock, seed_credential


@pytest.fixture
def ledger(fake_redis: FakeRedis, clock: FakeClock) -> QuotaLedger:
    return QuotaLedger(fake_redis, clock=clock)


class TestCredentialParsing:
    def test_empty_hash_is_unknown(self) -> None:
        assert Credential.from_hash("k", {}) is None

    def test_hash_without_limit_is_unknown(self) -> None:
        assert Credential.from_hash("k", {"used": "3"}) is None

    def test_missing_is_active_means_active(self) -> None:
        credential = Credential.from_hash("k", {"limit": "10", "used": "2"})

        assert credential is not None
        assert credential.is_active is True
        assert credential.unlimited is False
        assert credential.used == 2

    def test_extra_fields_kept_as_metadata(self) -> None:
        credential = Credential.from_hash(
            "k", {"limit": "10", "used": "0", "name": "Partner", "createdAt": "1700000000000"}
        )

        assert credential is not None
        assert credential.metadata == {"name": "Partner"}
        assert credential.created_at == 1700000000000
        assert credential.last_used is None

    def test_garbage_counters_default_to_zero(self) -> None:
        credential = Credential.from_hash("k", {"limit": "ten", "used": ""})

        assert credential is not None
        assert credential.limit == 0
        assert credential.used == 0


def test_fingerprint_is_stable_and_short() -> None:
    assert fingerprint("secret-key") == fingerprint("secret-key")
    assert len(fingerprint("secret-key")) == 16
    assert "secret" not in fingerprint("secret-key")


@pytest.mark.asyncio
async def test_last_unit_is_accepted_then_limit_reached(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=100, used=99)

    first = await ledger.check_and_consume("k")
    assert first.outcome is QuotaOutcome.ACCEPTED
    assert first.used == 100
    assert first.remaining == 0

    second = await ledger.check_and_consume("k")
    assert second.outcome is QuotaOutcome.LIMIT_EXCEEDED
    assert (second.used, second.limit) == (100, 100)
    assert fake_redis.dump("apikey:k")["used"] == "100"


@pytest.mark.asyncio
async def test_rejection_does_not_increment(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=3, used=3)

    decision = await ledger.check_and_consume("k")

    assert decision.outcome is QuotaOutcome.LIMIT_EXCEEDED
    assert "hincrby" not in fake_redis.calls
    assert fake_redis.dump("apikey:k")["used"] == "3"


@pytest.mark.asyncio
async def test_concurrent_requests_at_last_unit_accept_exactly_one(
    fake_redis: FakeRedis, ledger: QuotaLedger
) -> None:
    seed_credential(fake_redis, "k", limit=100, used=99)

    decisions = await asyncio.gather(*(ledger.check_and_consume("k") for _ in range(2)))

    assert sum(d.accepted for d in decisions) == 1
    assert fake_redis.dump("apikey:k")["used"] == "100"


@pytest.mark.asyncio
async def test_concurrent_burst_never_exceeds_limit(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=5, used=0)

    decisions = await asyncio.gather(*(ledger.check_and_consume("k") for _ in range(20)))

    assert sum(d.accepted for d in decisions) == 5
    assert all(d.outcome is QuotaOutcome.LIMIT_EXCEEDED for d in decisions if not d.accepted)
    assert fake_redis.dump("apikey:k")["used"] == "5"


@pytest.mark.asyncio
async def test_unlimited_credential_ignores_limit(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=1, used=50, unlimited=True)

    decision = await ledger.check_and_consume("k")

    assert decision.accepted
    assert decision.used == 51
    assert decision.remaining is None


@pytest.mark.asyncio
async def test_inactive_credential_is_rejected_without_consuming(
    fake_redis: FakeRedis, ledger: QuotaLedger
) -> None:
    seed_credential(fake_redis, "k", limit=10, used=1, is_active=False)

    decision = await ledger.check_and_consume("k")

    assert decision.outcome is QuotaOutcome.INACTIVE
    assert fake_redis.dump("apikey:k")["used"] == "1"


@pytest.mark.asyncio
async def test_credential_without_is_active_is_accepted(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "legacy", limit=10, is_active=None)

    decision = await ledger.check_and_consume("legacy")

    assert decision.accepted


@pytest.mark.asyncio
async def test_unknown_key_raises(ledger: QuotaLedger) -> None:
    with pytest.raises(UnknownCredentialError) as exc_info:
        await ledger.check_and_consume("nope")

    assert exc_info.value.code == "invalid_api_key"


@pytest.mark.asyncio
async def test_accept_stamps_last_used(fake_redis: FakeRedis, ledger: QuotaLedger, clock: FakeClock) -> None:
    seed_credential(fake_redis, "k")
    clock.advance(5)

    await ledger.check_and_consume("k")

    assert fake_redis.dump("apikey:k")["lastUsed"] == str(int(clock() * 1000))


@pytest.mark.asyncio
async def test_last_used_failure_keeps_acceptance(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=10, used=0)
    fake_redis.fail_commands = {"hset"}

    decision = await ledger.check_and_consume("k")

    assert decision.accepted
    assert fake_redis.dump("apikey:k")["used"] == "1"
    assert "lastUsed" not in fake_redis.dump("apikey:k")


@pytest.mark.asyncio
async def test_get_credential_does_not_consume(fake_redis: FakeRedis, ledger: QuotaLedger) -> None:
    seed_credential(fake_redis, "k", limit=10, used=4)

    credential = await ledger.get_credential("k")

    assert credential is not None
    assert credential.used == 4
    assert await ledger.get_credential("missing") is None
    assert "hincrby" not in fake_redis.calls


class TestBackendFailure:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing", ["hgetall", "hincrby"])
    async def test_fail_closed_raises_store_unavailable(
        self, fake_redis: FakeRedis, clock: FakeClock, failing: str
    ) -> None:
        seed_credential(fake_redis, "k")
        fake_redis.fail_commands = {failing}
        ledger = QuotaLedger(fake_redis, failure_policy=FailurePolicy.CLOSED, clock=clock)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await ledger.check_and_consume("k")

        assert exc_info.value.code == "quota_ledger_unavailable"
        assert exc_info.value.details == {"component": "ledger"}

    @pytest.mark.asyncio
    async def test_fail_open_admits_unmetered(self, fake_redis: FakeRedis, clock: FakeClock) -> None:
        fake_redis.fail_commands = {"*"}
        ledger = QuotaLedger(fake_redis, failure_policy=FailurePolicy.OPEN, clock=clock)

        decision = await ledger.check_and_consume("anything")

        assert decision.accepted
        assert decision.metered is False
        assert decision.remaining is None

    @pytest.mark.asyncio
    async def test_get_credential_raises_regardless_of_policy(
        self, fake_redis: FakeRedis, clock: FakeClock
    ) -> None:
        fake_redis.fail_commands = {"hgetall"}
        ledger = QuotaLedger(fake_redis, failure_policy=FailurePolicy.OPEN, clock=clock)

        with pytest.raises(StoreUnavailableError):
            await ledger.get_credential("k")


@pytest.mark.asyncio
@pytest.mark.parametrize("policy", [FailurePolicy.OPEN, FailurePolicy.CLOSED])
async def test_failed_compensation_still_rejects_the_losing_request(
    fake_redis: FakeRedis, clock: FakeClock, monkeypatch: pytest.MonkeyPatch, policy: FailurePolicy
) -> None:
    seed_credential(fake_redis, "k", limit=5, used=4)
    increment = fake_redis.hincrby

    async def hincrby(name: str, key: str, amount: int = 1) -> int:
        if amount < 0:
            raise RedisConnectionError("connection lost")
        return await increment(name, key, amount)

    monkeypatch.setattr(fake_redis, "hincrby", hincrby)
    ledger = QuotaLedger(fake_redis, failure_policy=policy, clock=clock)

    decisions = await asyncio.gather(*(ledger.check_and_consume("k") for _ in range(2)))

    assert sorted(d.outcome.value for d in decisions) == ["accepted", "limit_exceeded"]
    assert all(d.metered for d in decisions)

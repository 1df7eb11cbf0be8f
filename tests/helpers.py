"""Shared test helpers (clock and credential seeding)."""

from __future__ import annotations

from tests.fake_redis import FakeRedis


class FakeClock:
    """Deterministic clock used to test expiry and window logic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def seed_credential(
    redis: FakeRedis,
    key_id: str,
    *,
    limit: int = 100,
    used: int = 0,
    unlimited: bool = False,
    is_active: bool | None = True,
) -> None:
    """Write a credential hash the way the administration tooling does.

    ``is_active=None`` omits the field, like keys issued before activation
    toggling existed.
    """
    fields = {
        "limit": str(limit),
        "used": str(used),
        "unlimited": "true" if unlimited else "false",
        "createdAt": "1700000000000",
        "name": "Test key",
    }
    if is_active is not None:
        fields["isActive"] = "true" if is_active else "false"
    redis._hset(f"apikey:{key_id}", mapping=fields)

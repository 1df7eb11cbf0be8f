"""Quota ledger: lifetime request budgets per API key.

Credentials live in Redis hashes (``apikey:{key}``) owned by the credential
administration tooling. The ledger only reads them and bumps ``used``.

Field encoding shared with administration:
- ``limit``, ``used``: integer strings
- ``unlimited``, ``isActive``: ``"true"`` / ``"false"``
- ``createdAt``, ``lastUsed``: epoch milliseconds as string

Consumption uses ``HINCRBY`` as the single atomic step. The budget is checked
again against the value the increment returned; if a concurrent request took
the last unit first, the increment is undone and the request rejected. Two
requests racing at ``used = limit - 1`` can therefore never both succeed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import FailurePolicy
from app.core.errors import StoreUnavailableError, UnknownCredentialError
from app.core.logging import fingerprint

logger = logging.getLogger(__name__)


def _parse_int(value: str | None, default: int = 0) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1")


@dataclass(frozen=True)
class Credential:
    """Decoded view of a credential hash."""

    key_id: str
    limit: int
    used: int
    unlimited: bool
    is_active: bool
    created_at: int | None = None
    last_used: int | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_hash(cls, key_id: str, data: Mapping[str, str]) -> "Credential | None":
        """Build a credential from raw hash fields.

        Returns None when the hash is empty or lacks ``limit``, which is how
        an unknown key looks in the store.
        """
        if not data or "limit" not in data:
            return None

        known = {"limit", "used", "unlimited", "isActive", "createdAt", "lastUsed"}
        created_at = _parse_int(data.get("createdAt"), 0) or None
        last_used = _parse_int(data.get("lastUsed"), 0) or None
        return cls(
            key_id=key_id,
            limit=_parse_int(data.get("limit")),
            used=_parse_int(data.get("used")),
            unlimited=_parse_bool(data.get("unlimited"), False),
            # Keys issued before activation toggling have no isActive field
            is_active=_parse_bool(data.get("isActive"), True),
            created_at=created_at,
            last_used=last_used,
            metadata={k: v for k, v in data.items() if k not in known},
        )


class QuotaOutcome(str, Enum):
    ACCEPTED = "accepted"
    INACTIVE = "inactive"
    LIMIT_EXCEEDED = "limit_exceeded"


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a ``check_and_consume`` call.

    Attributes:
        outcome: Accepted or the rejection reason.
        used: Usage after this call (accepted) or the observed usage (rejected).
        limit: Configured limit of the credential.
        unlimited: Whether the credential ignores its limit.
        metered: False when the ledger was bypassed under a fail-open policy.
    """

    outcome: QuotaOutcome
    used: int
    limit: int
    unlimited: bool
    metered: bool = True

    @property
    def accepted(self) -> bool:
        return self.outcome is QuotaOutcome.ACCEPTED

    @property
    def remaining(self) -> int | None:
        """Requests left, or None for unlimited/unmetered credentials."""
        if self.unlimited or not self.metered:
            return None
        return max(0, self.limit - self.used)


class QuotaLedger:
    """Atomically checks and consumes one unit of a credential's quota."""

    def __init__(
        self,
        redis: Redis,
        *,
        key_prefix: str = "apikey",
        failure_policy: FailurePolicy = FailurePolicy.CLOSED,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._prefix = key_prefix
        self.failure_policy = failure_policy
        self._clock = clock

    def _key(self, key_id: str) -> str:
        return f"{self._prefix}:{key_id}"

    def _on_backend_failure(self, key_id: str, exc: RedisError) -> QuotaDecision:
        logger.error(
            "quota.backend_unavailable",
            extra={
                "key_hash": fingerprint(key_id),
                "error_type": type(exc).__name__,
                "failure_policy": self.failure_policy.value,
            },
        )
        if self.failure_policy is FailurePolicy.OPEN:
            return QuotaDecision(
                outcome=QuotaOutcome.ACCEPTED,
                used=0,
                limit=0,
                unlimited=False,
                metered=False,
            )
        raise StoreUnavailableError(
            code="quota_ledger_unavailable",
            message="Unable to verify API key quota. Try again later.",
            details={"component": "ledger"},
        ) from exc

    async def get_credential(self, key_id: str) -> Credential | None:
        """Read a credential without consuming quota.

        Raises:
            StoreUnavailableError: If the backend fails (regardless of policy).
        """
        try:
            data = await self._redis.hgetall(self._key(key_id))
        except RedisError as exc:
            raise StoreUnavailableError(
                code="quota_ledger_unavailable",
                message="Unable to read API key",
                details={"component": "ledger"},
            ) from exc
        return Credential.from_hash(key_id, data)

    async def check_and_consume(self, key_id: str) -> QuotaDecision:
        """Check the credential and, if within budget, consume one unit.

        Args:
            key_id: API key presented by the caller.

        Returns:
            QuotaDecision describing acceptance or the rejection reason.

        Raises:
            UnknownCredentialError: If no credential exists for ``key_id``.
            StoreUnavailableError: If the backend fails and the policy is closed.
        """
        redis_key = self._key(key_id)
        key_hash = fingerprint(key_id)

        try:
            data = await self._redis.hgetall(redis_key)
        except RedisError as exc:
            return self._on_backend_failure(key_id, exc)

        credential = Credential.from_hash(key_id, data)
        if credential is None:
            logger.warning("quota.unknown_key", extra={"key_hash": key_hash})
            raise UnknownCredentialError(
                code="invalid_api_key",
                message="Invalid API key",
            )

        if not credential.is_active:
            logger.warning("quota.inactive_key", extra={"key_hash": key_hash})
            return QuotaDecision(
                outcome=QuotaOutcome.INACTIVE,
                used=credential.used,
                limit=credential.limit,
                unlimited=credential.unlimited,
            )

        if not credential.unlimited and credential.used >= credential.limit:
            return self._limit_exceeded(credential, credential.used)

        try:
            used_after = await self._redis.hincrby(redis_key, "used", 1)
        except RedisError as exc:
            return self._on_backend_failure(key_id, exc)

        if not credential.unlimited and used_after > credential.limit:
            # A concurrent request consumed the last unit first
            try:
                await self._redis.hincrby(redis_key, "used", -1)
            except RedisError as exc:
                logger.error(
                    "quota.compensation_failed",
                    extra={"key_hash": key_hash, "used": used_after, "error_type": type(exc).__name__},
                )
            return self._limit_exceeded(credential, used_after - 1)

        try:
            await self._redis.hset(redis_key, "lastUsed", str(int(self._clock() * 1000)))
        except RedisError as exc:
            # The unit is already consumed; a stale lastUsed is cosmetic.
            logger.warning(
                "quota.last_used_not_recorded",
                extra={"key_hash": key_hash, "error_type": type(exc).__name__},
            )

        logger.info(
            "quota.accepted",
            extra={
                "key_hash": key_hash,
                "used": used_after,
                "limit": credential.limit,
                "unlimited": credential.unlimited,
            },
        )
        return QuotaDecision(
            outcome=QuotaOutcome.ACCEPTED,
            used=used_after,
            limit=credential.limit,
            unlimited=credential.unlimited,
        )

    def _limit_exceeded(self, credential: Credential, used: int) -> QuotaDecision:
        logger.warning(
            "quota.exceeded",
            extra={
                "key_hash": fingerprint(credential.key_id),
                "used": used,
                "limit": credential.limit,
            },
        )
        return QuotaDecision(
            outcome=QuotaOutcome.LIMIT_EXCEEDED,
            used=used,
            limit=credential.limit,
            unlimited=False,
        )

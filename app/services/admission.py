"""Admission gate: quota first, then rate.

The ordering is a behavioural contract:
- a request rejected by quota never touches the rate limiter, so it does not
  use up rate budget;
- a request rejected by the rate limiter has already consumed one unit of
  quota, because the ledger commits its increment before the limiter runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.core.errors import UnknownCredentialError
from app.core.logging import fingerprint
from app.services.quota_ledger import QuotaDecision, QuotaLedger, QuotaOutcome

logger = logging.getLogger(__name__)


class AdmissionReason(str, Enum):
    ACCEPTED = "accepted"
    UNKNOWN_CREDENTIAL = "unknown_credential"
    INACTIVE = "inactive"
    LIMIT_EXCEEDED = "limit_exceeded"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of ``AdmissionGate.admit``.

    Attributes:
        reason: ACCEPTED or the first check that rejected the request.
        quota: Ledger decision, absent for unknown credentials.
        rate_limit: Limiter result, absent when the limiter did not run.
    """

    reason: AdmissionReason
    quota: QuotaDecision | None = None
    rate_limit: RateLimitResult | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is AdmissionReason.ACCEPTED

    @property
    def retry_after_seconds(self) -> int | None:
        if self.rate_limit is None:
            return None
        return self.rate_limit.retry_after_seconds


_QUOTA_REASONS = {
    QuotaOutcome.INACTIVE: AdmissionReason.INACTIVE,
    QuotaOutcome.LIMIT_EXCEEDED: AdmissionReason.LIMIT_EXCEEDED,
}


class AdmissionGate:
    """Composes the quota ledger and the rate limiter into one decision."""

    def __init__(self, ledger: QuotaLedger, limiter: AbstractRateLimiter | None) -> None:
        """Initialize the gate.

        Args:
            ledger: Quota ledger (always consulted).
            limiter: Rate limiter, or None when rate limiting is disabled.
        """
        self.ledger = ledger
        self.limiter = limiter

    async def admit(self, key_id: str | None) -> AdmissionResult:
        """Decide whether a request carrying ``key_id`` may proceed.

        Raises:
            StoreUnavailableError: If the ledger (fail-closed) or a fail-closed
                limiter cannot reach the backend.
        """
        if not key_id:
            return AdmissionResult(reason=AdmissionReason.UNKNOWN_CREDENTIAL)

        try:
            quota = await self.ledger.check_and_consume(key_id)
        except UnknownCredentialError:
            return AdmissionResult(reason=AdmissionReason.UNKNOWN_CREDENTIAL)

        if not quota.accepted:
            return AdmissionResult(reason=_QUOTA_REASONS[quota.outcome], quota=quota)

        if self.limiter is None:
            return AdmissionResult(reason=AdmissionReason.ACCEPTED, quota=quota)

        rate = await self.limiter.allow(key_id)
        if not rate.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": fingerprint(key_id),
                    "limit": rate.limit,
                    "retry_after_s": rate.retry_after_seconds,
                },
            )
            return AdmissionResult(reason=AdmissionReason.RATE_LIMITED, quota=quota, rate_limit=rate)

        return AdmissionResult(reason=AdmissionReason.ACCEPTED, quota=quota, rate_limit=rate)

"""Admission dependency for FastAPI routes.

Wires the admission gate into the HTTP layer and translates its decisions
into domain errors, which the global exception handlers turn into 401/429.

Design goals:
- Routes depend on ``enforce_admission`` only, never on Redis directly.
- The gate instance is built once at start-up and lives on ``app.state``.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response

from app.core.auth import extract_api_key
from app.core.config import settings
from app.core.errors import (
    ErrorDetails,
    InactiveCredentialError,
    QuotaExceededError,
    RateLimitedError,
    UnknownCredentialError,
)
from app.services.admission import AdmissionGate, AdmissionReason, AdmissionResult

logger = logging.getLogger(__name__)


def get_admission_gate(request: Request) -> AdmissionGate:
    """Return the process-wide admission gate created at start-up."""
    return request.app.state.admission_gate


def raise_for_rejection(result: AdmissionResult, *, credential_present: bool = True) -> None:
    """Raise the domain error matching a rejected admission.

    Args:
        result: Gate decision.
        credential_present: Whether the caller sent any key at all.

    Raises:
        UnknownCredentialError: Missing or unknown key.
        InactiveCredentialError: Deactivated key.
        QuotaExceededError: Lifetime quota exhausted.
        RateLimitedError: Sliding window full.
    """
    reason = result.reason
    if reason is AdmissionReason.ACCEPTED:
        return

    if reason is AdmissionReason.UNKNOWN_CREDENTIAL:
        if not credential_present:
            raise UnknownCredentialError(
                code="missing_api_key",
                message=f"API key is required. Provide the {settings.app.api_key_header} header.",
            )
        raise UnknownCredentialError(code="invalid_api_key", message="Invalid API key")

    if reason is AdmissionReason.INACTIVE:
        raise InactiveCredentialError(code="inactive_api_key", message="API key is deactivated")

    if reason is AdmissionReason.LIMIT_EXCEEDED:
        quota = result.quota
        details: ErrorDetails = {}
        if quota is not None:
            details = {"used": quota.used, "limit": quota.limit}
        raise QuotaExceededError(
            code="quota_exceeded",
            message="API limit exceeded",
            details=details,
        )

    rate = result.rate_limit
    rate_details: ErrorDetails = {}
    if rate is not None:
        rate_details = {
            "retry_after": rate.retry_after_seconds or 0,
            "limit": rate.limit,
            "remaining": rate.remaining,
            "reset_at": rate.reset_at,
        }
    raise RateLimitedError(
        code="rate_limited",
        message="Too many requests. Try again later.",
        details=rate_details,
    )


async def enforce_admission(request: Request, response: Response) -> AdmissionResult:
    """FastAPI dependency admitting the request or raising a domain error.

    Consumes one unit of the caller's quota and one slot of its rate window.
    On success the ``X-RateLimit-*`` headers are attached to the response
    (when enabled) and the decision is returned for the route to report the
    remaining quota.

    Raises:
        AuthenticationAppError: 401 for missing, unknown or inactive keys.
        ThrottledAppError: 429 for quota or rate rejections.
        StoreUnavailableError: 503 when the ledger cannot be consulted.
    """
    api_key = extract_api_key(request)
    gate = get_admission_gate(request)

    result = await gate.admit(api_key)
    raise_for_rejection(result, credential_present=api_key is not None)

    rate = result.rate_limit
    if rate is not None and not rate.degraded and settings.app.rate_limit_include_headers:
        response.headers["X-RateLimit-Limit"] = str(rate.limit)
        response.headers["X-RateLimit-Remaining"] = str(rate.remaining)
        response.headers["X-RateLimit-Reset"] = str(rate.reset_at)

    return result

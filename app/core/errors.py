"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses. Each family maps to a
single HTTP status in ``app.core.exception_handlers``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    field: str
    value: str
    used: int
    limit: int
    component: str
    retry_after: int
    remaining: int
    reset_at: int
    number: str
    allowed_fields: list[str]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails (malformed key, bad query)."""


class AuthenticationAppError(AppError):
    """Raised when the caller's credential cannot be used."""


class UnknownCredentialError(AuthenticationAppError):
    """No credential record exists for the presented API key."""


class InactiveCredentialError(AuthenticationAppError):
    """The credential exists but has been deactivated."""


class NotFoundAppError(AppError):
    """A valid lookup produced no record."""


class ThrottledAppError(AppError):
    """Admission rejected for budget reasons (quota or rate)."""

    @property
    def retry_after(self) -> int | None:
        if not self.details:
            return None
        return self.details.get("retry_after")


class QuotaExceededError(ThrottledAppError):
    """Lifetime request budget of a credential is exhausted."""


class RateLimitedError(ThrottledAppError):
    """Too many requests inside the sliding window."""


class StoreUnavailableError(AppError):
    """The backing key-value service could not answer (timeout, connection)."""

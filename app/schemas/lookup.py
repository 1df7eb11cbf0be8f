"""Pydantic schemas for lookup and search responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.record import Record

Remaining = int | Literal["Unlimited"]


class LookupMeta(BaseModel):
    """Metadata attached to a successful lookup."""

    cached: bool = Field(..., description="True when served from the lookup cache.")
    response_time_ms: float = Field(..., description="Server-side handling time.")
    requests_remaining: Remaining | None = Field(
        default=None,
        description="Quota left for the calling key, or 'Unlimited'.",
    )


class LookupResponse(BaseModel):
    """Response for ``GET /v1/number``."""

    success: bool = True
    number: str
    data: Record
    meta: LookupMeta


class SearchHit(Record):
    """A record annotated with the number it is stored under."""

    number: str


class SearchSummary(BaseModel):
    """Pagination block of a search response."""

    query: str
    field: str = Field(..., description="Field searched, or 'all_fields'.")
    total_results: int
    page: int
    limit: int
    total_pages: int
    truncated: bool = Field(
        False,
        description="True when the scan stopped at the configured match ceiling.",
    )


class SearchMeta(BaseModel):
    response_time_ms: float
    requests_remaining: Remaining | None = None


class SearchResponse(BaseModel):
    """Response for ``GET /v1/search``."""

    search: SearchSummary
    results: list[SearchHit]
    meta: SearchMeta

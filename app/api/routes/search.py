from __future__ import annotations

import time
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.api.routes.lookup import requests_remaining
from app.core.admission import enforce_admission
from app.schemas.lookup import SearchHit, SearchMeta, SearchResponse, SearchSummary
from app.services.admission import AdmissionResult
from app.services.search_service import SearchService

router = APIRouter(tags=["Search"])


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


@router.get("/search", response_model=SearchResponse)
async def search_records(
    admission: Annotated[AdmissionResult, Depends(enforce_admission)],
    service: Annotated[SearchService, Depends(get_search_service)],
    q: Annotated[str | None, Query(description="Text to search for")] = None,
    field: Annotated[str | None, Query(description="Restrict to one record field")] = None,
    page: int = 1,
    limit: int = 50,
) -> SearchResponse:
    """Case-insensitive substring search across stored records.

    Raises:
        ValidationAppError: 400 for a missing query, unknown field or bad paging.
        StoreUnavailableError: 503 when a shard scan fails.
    """
    started = time.perf_counter()
    result = await service.search(q, field, page=page, limit=limit)

    return SearchResponse(
        search=SearchSummary(
            query=result.query,
            field=result.field,
            total_results=result.total_results,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
            truncated=result.truncated,
        ),
        results=[
            SearchHit(number=key, **record.model_dump())
            for key, record in result.results
        ],
        meta=SearchMeta(
            response_time_ms=round((time.perf_counter() - started) * 1000, 2),
            requests_remaining=requests_remaining(admission),
        ),
    )

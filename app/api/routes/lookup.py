from __future__ import annotations

import time
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.core.admission import enforce_admission
from app.core.errors import NotFoundAppError
from app.schemas.lookup import LookupMeta, LookupResponse
from app.services.admission import AdmissionResult
from app.services.lookup_cache import LookupCache
from app.services.partitioning import validate_record_key

router = APIRouter(tags=["Lookup"])


def get_lookup_cache(request: Request) -> LookupCache:
    return request.app.state.lookup_cache


def requests_remaining(admission: AdmissionResult) -> int | str | None:
    """Quota left after this request, 'Unlimited', or None when unmetered."""
    quota = admission.quota
    if quota is None or not quota.metered:
        return None
    if quota.unlimited:
        return "Unlimited"
    return quota.remaining


@router.get("/number", response_model=LookupResponse)
async def lookup_number(
    admission: Annotated[AdmissionResult, Depends(enforce_admission)],
    cache: Annotated[LookupCache, Depends(get_lookup_cache)],
    number: Annotated[str | None, Query(description="10-digit number starting with 6-9")] = None,
) -> LookupResponse:
    """Look up the record stored under a number.

    Admission (quota, then rate) runs before the number is validated, so a
    malformed request still consumes quota.

    Raises:
        ValidationAppError: 400 for a missing or malformed number.
        NotFoundAppError: 404 when no record exists.
        StoreUnavailableError: 503 when the store cannot be read.
    """
    started = time.perf_counter()
    key = validate_record_key(number)

    result = await cache.get_or_populate(key)
    if result is None:
        raise NotFoundAppError(
            code="number_not_found",
            message="Number not found",
            details={"number": key},
        )

    return LookupResponse(
        number=key,
        data=result.record,
        meta=LookupMeta(
            cached=result.from_cache,
            response_time_ms=round((time.perf_counter() - started) * 1000, 2),
            requests_remaining=requests_remaining(admission),
        ),
    )

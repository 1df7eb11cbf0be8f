from __future__ import annotations

from fastapi import APIRouter

from app.services.partitioning import PARTITION_SCHEME_VERSION

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Does not touch Redis; a backend outage shows up as 503s on the data
    endpoints, not as a dead process.

    Returns:
        dict: ``status`` plus the partition scheme this build reads.
    """

    return {"status": "ok", "partition_scheme": PARTITION_SCHEME_VERSION}

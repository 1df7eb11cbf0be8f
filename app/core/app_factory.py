"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the start-up wiring of the core components onto ``app.state``:

    redis ─┬─ PartitionedRecordStore ─┬─ LookupCache (+ cache backend)
           │                          └─ SearchService
           ├─ QuotaLedger ────────────┐
           └─ SlidingWindowLimiter ───┴─ AdmissionGate
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from redis.asyncio import Redis

from app.adapters.cache.factory import create_cache_backend
from app.adapters.kv.factory import create_redis_client
from app.adapters.rate_limit.sliding_window import RedisSlidingWindowRateLimiter
from app.api.routes import health_router, lookup_router, search_router
from app.core.config import Settings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.admission import AdmissionGate
from app.services.lookup_cache import LookupCache
from app.services.quota_ledger import QuotaLedger
from app.services.record_store import PartitionedRecordStore
from app.services.search_service import SearchService

logger = logging.getLogger(__name__)


def wire_services(app: FastAPI, redis: Redis, cfg: Settings) -> None:
    """Build the core components on top of ``redis`` and attach them to app.state."""
    store = PartitionedRecordStore(
        redis,
        partition_count=cfg.store.partition_count,
        prefix=cfg.store.partition_prefix,
    )
    limiter = None
    if cfg.app.rate_limit_enabled:
        limiter = RedisSlidingWindowRateLimiter(
            redis,
            max_requests=cfg.app.rate_limit_requests,
            window_seconds=cfg.app.rate_limit_window_seconds,
            failure_policy=cfg.app.rate_limit_failure_policy,
        )
    ledger = QuotaLedger(
        redis,
        key_prefix=cfg.quota.key_prefix,
        failure_policy=cfg.quota.failure_policy,
    )

    app.state.redis = redis
    app.state.record_store = store
    app.state.lookup_cache = LookupCache(
        store,
        create_cache_backend(redis, cfg.store),
        ttl_seconds=cfg.store.cache_ttl_seconds,
    )
    app.state.search_service = SearchService(
        store,
        max_matches=cfg.store.search_max_matches,
        max_page_size=cfg.store.search_max_page_size,
        scan_count=cfg.store.search_scan_count,
    )
    app.state.admission_gate = AdmissionGate(ledger, limiter)

    logger.info(
        "app.services_wired",
        extra={
            "partition_count": cfg.store.partition_count,
            "cache_backend": cfg.store.cache_backend,
            "cache_ttl_s": cfg.store.cache_ttl_seconds,
            "rate_limit_enabled": cfg.app.rate_limit_enabled,
            "quota_failure_policy": cfg.quota.failure_policy.value,
            "rate_limit_failure_policy": cfg.app.rate_limit_failure_policy.value,
        },
    )


def create_app(redis: Redis | None = None, cfg: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        redis: Client to use instead of one built from settings (tests).
            A client passed in is not closed on shutdown.
        cfg: Settings override; defaults to the global settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = redis if redis is not None else create_redis_client(cfg.redis)
        wire_services(app, client, cfg)
        try:
            yield
        finally:
            if redis is None:
                await client.aclose()

    app = FastAPI(
        title="Number Lookup API",
        description=(
            "Point lookups and text search over a sharded record set keyed by "
            "10-digit numbers. Requires an API key (X-API-Key header or api_key "
            "query parameter); every call is metered against the key's quota "
            "and a per-minute sliding-window rate limit."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(lookup_router, prefix="/v1")
    app.include_router(search_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app

from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.lookup import router as lookup_router
from app.api.routes.search import router as search_router

__all__ = ["health_router", "lookup_router", "search_router"]

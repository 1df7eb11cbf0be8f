"""API key extraction for request handling.

The key travels in the ``X-API-Key`` header or, for clients that cannot set
headers, the ``api_key`` query parameter (both names are configurable). This
module only locates the key; whether it is valid, active and within budget
is decided by the admission gate.
"""

from __future__ import annotations

import logging

from fastapi import Request

from app.core.config import settings

logger = logging.getLogger(__name__)


def extract_api_key(request: Request) -> str | None:
    """Return the API key presented with the request, if any.

    The header wins over the query parameter. Surrounding whitespace is
    stripped; a blank value counts as missing.

    Args:
        request: Incoming FastAPI request.

    Returns:
        The API key, or None when the caller sent none.
    """
    raw = request.headers.get(settings.app.api_key_header)
    source = "header"
    if not raw:
        raw = request.query_params.get(settings.app.api_key_query_param)
        source = "query"

    key = raw.strip() if raw else ""
    if not key:
        logger.debug("auth.missing_key", extra={"path": request.url.path})
        return None

    if source == "query":
        logger.debug("auth.key_from_query", extra={"path": request.url.path})
    return key

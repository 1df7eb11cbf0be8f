"""OpenAPI customization: API key security schemes and tag metadata.

Keeps documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from app.core.config import settings

TAGS_METADATA: list[dict[str, str]] = [
    {"name": "Lookup", "description": "Point lookups by number (cache-aside over the shards)."},
    {"name": "Search", "description": "Substring search across stored records."},
    {"name": "Health", "description": "Liveness probe (no API key required)."},
]

# Paths served without admission
PUBLIC_PATHS = frozenset({"/health"})


def _security_schemes() -> dict[str, dict[str, str]]:
    return {
        "ApiKeyHeader": {
            "type": "apiKey",
            "in": "header",
            "name": settings.app.api_key_header,
            "description": "API key issued by the administrator.",
        },
        "ApiKeyQuery": {
            "type": "apiKey",
            "in": "query",
            "name": settings.app.api_key_query_param,
            "description": "Same key as a query parameter, for clients that cannot set headers.",
        },
    }


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    Every operation requires an API key (header or query) except
    ``PUBLIC_PATHS``, which get ``security: []``. FastAPI caches the schema
    dict on first build; it is patched in place, so later calls reuse it.
    """

    original_openapi = app.openapi

    def custom_openapi() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()
        schema.setdefault("components", {}).setdefault("securitySchemes", {}).update(
            _security_schemes()
        )
        schema["security"] = [{"ApiKeyHeader": []}, {"ApiKeyQuery": []}]

        known_tags = {tag.get("name") for tag in schema.get("tags", [])}
        schema.setdefault("tags", []).extend(
            tag for tag in TAGS_METADATA if tag["name"] not in known_tags
        )

        for path, operations in schema.get("paths", {}).items():
            if path not in PUBLIC_PATHS:
                continue
            for operation in operations.values():
                if isinstance(operation, dict):
                    operation["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]

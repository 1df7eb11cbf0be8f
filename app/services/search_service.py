"""Substring search over the partitioned record set.

Shards are scanned in partition order with ``HSCAN``. A full scan of a
large record set is expensive, so matching stops once ``max_matches``
records were collected and the page is cut from that truncated set.
"""

from __future__ import annotations

import logging
import math
from contextlib import aclosing
from dataclasses import dataclass

from app.core.errors import ValidationAppError
from app.schemas.record import SEARCHABLE_FIELDS, Record
from app.services.record_store import PartitionedRecordStore

logger = logging.getLogger(__name__)

ALL_FIELDS = "all_fields"


@dataclass(frozen=True)
class SearchPage:
    """One page of search matches plus totals."""

    query: str
    field: str
    total_results: int
    page: int
    limit: int
    truncated: bool
    results: list[tuple[str, Record]]

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_results / self.limit) if self.total_results else 0


def _matches(record: Record, needle: str, field: str | None) -> bool:
    if field is not None:
        value = getattr(record, field)
        return value is not None and needle in value.lower()
    return any(
        value is not None and needle in value.lower()
        for value in (getattr(record, name) for name in SEARCHABLE_FIELDS)
    )


class SearchService:
    """Case-insensitive substring search across all shards."""

    def __init__(
        self,
        store: PartitionedRecordStore,
        *,
        max_matches: int = 1000,
        max_page_size: int = 100,
        scan_count: int = 500,
    ) -> None:
        self._store = store
        self._max_matches = max_matches
        self._max_page_size = max_page_size
        self._scan_count = scan_count

    def _validate(self, query: str | None, field: str | None, page: int, limit: int) -> tuple[str, str | None]:
        needle = (query or "").strip()
        if not needle:
            raise ValidationAppError(
                code="missing_query",
                message="Search query required",
                details={"hint": "/v1/search?q=john&field=name"},
            )

        if field in (None, "", ALL_FIELDS):
            field = None
        elif field not in SEARCHABLE_FIELDS:
            raise ValidationAppError(
                code="invalid_search_field",
                message=f"Unknown search field: '{field}'",
                details={"allowed_fields": list(SEARCHABLE_FIELDS)},
            )

        if page < 1 or not 1 <= limit <= self._max_page_size:
            raise ValidationAppError(
                code="invalid_pagination",
                message=f"page must be >= 1 and limit between 1 and {self._max_page_size}",
            )
        return needle.lower(), field

    async def search(
        self,
        query: str | None,
        field: str | None = None,
        *,
        page: int = 1,
        limit: int = 50,
    ) -> SearchPage:
        """Find records whose field (or any field) contains ``query``.

        Args:
            query: Text to look for; compared case-insensitively.
            field: Restrict matching to one record field.
            page: 1-based page number.
            limit: Page size.

        Returns:
            SearchPage with the requested slice and totals.

        Raises:
            ValidationAppError: For an empty query, unknown field or bad paging.
            StoreUnavailableError: If a shard scan fails.
        """
        needle, field_name = self._validate(query, field, page, limit)

        matches: list[tuple[str, Record]] = []
        truncated = False
        for partition_id in range(self._store.partition_count):
            rows = self._store.iter_partition(partition_id, scan_count=self._scan_count)
            async with aclosing(rows):
                async for key, record in rows:
                    if not _matches(record, needle, field_name):
                        continue
                    if len(matches) >= self._max_matches:
                        # A match beyond the ceiling means results were cut
                        truncated = True
                        break
                    matches.append((key, record))
            if truncated:
                break

        logger.info(
            "search.completed",
            extra={
                "field": field_name or ALL_FIELDS,
                "matches": len(matches),
                "truncated": truncated,
            },
        )

        start = (page - 1) * limit
        return SearchPage(
            query=query.strip() if query else "",
            field=field_name or ALL_FIELDS,
            total_results=len(matches),
            page=page,
            limit=limit,
            truncated=truncated,
            results=matches[start:start + limit],
        )

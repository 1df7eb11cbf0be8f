"""Record key validation and the key -> shard mapping.

The mapping is part of the storage format: the writer and every reader must
agree on it, so it is versioned and must never change in place. A new
scheme needs a new version string and a data migration.
"""

from __future__ import annotations

import re

from app.core.errors import ValidationAppError

PARTITION_SCHEME_VERSION = "charsum-v1"

RECORD_KEY_PATTERN = re.compile(r"^[6-9]\d{9}$")


def is_valid_record_key(raw: str | None) -> bool:
    """Return True when ``raw`` (stripped) is a 10-digit key starting 6-9."""
    if raw is None:
        return False
    return RECORD_KEY_PATTERN.match(raw.strip()) is not None


def validate_record_key(raw: str | None) -> str:
    """Normalize and validate a record key.

    Args:
        raw: Key as received from the caller, possibly padded with whitespace.

    Returns:
        The stripped key.

    Raises:
        ValidationAppError: If the key is missing or malformed.
    """
    if not is_valid_record_key(raw):
        raise ValidationAppError(
            code="invalid_record_key",
            message="A valid 10-digit number starting with 6-9 is required",
            details={"value": (raw or "")[:32]},
        )
    return raw.strip()  # type: ignore[union-attr]


def partition_of(key: str, partition_count: int) -> int:
    """Map a record key to its shard id.

    Sum of character code points modulo ``partition_count``. Cheap and
    stable across processes (no salted ``hash()``).

    Examples:
        >>> partition_of("9876543210", 1000)
        525
    """
    if partition_count < 1:
        raise ValueError("partition_count must be >= 1")
    return sum(ord(char) for char in key) % partition_count


def partition_key(partition_id: int, prefix: str = "part") -> str:
    """Build the backing-store name of a shard."""
    return f"{prefix}:{partition_id}"

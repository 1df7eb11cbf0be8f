"""Pydantic schema for a stored record."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """A person record as stored inside a shard.

    Records are written by the bulk loader and never mutated in place; a
    later write for the same number replaces the whole record.

    Stored payloads use camelCase keys (``fathersName``, ``aadharNumber``)
    shared with the loader; attributes are snake_case and either spelling
    is accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str | None = Field(default=None, description="Full name.")
    fathers_name: str | None = Field(default=None, description="Father's name.")
    phone_number: str | None = Field(default=None, description="Primary number.")
    other_number: str | None = Field(default=None, description="Alternate number.")
    passport_number: str | None = None
    aadhar_number: str | None = None
    age: str | None = None
    gender: str | None = None
    address: str | None = None
    district: str | None = None
    pincode: str | None = None
    state: str | None = None
    town: str | None = None
    source: str | None = Field(
        default=None,
        description="Identifier of the source feed that contributed the record.",
    )


# Fields a text search may be restricted to
SEARCHABLE_FIELDS: tuple[str, ...] = tuple(
    name for name in Record.model_fields if name != "source"
)

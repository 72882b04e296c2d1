"""
Domain models for the batch mutator.

Defines the record schema aligned with `db/init.sql`, the predicates used to
select eligible records, and the marker token generator.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field


def new_token() -> str:
    """Return a fresh random marker token (UUID4, 122 random bits)."""
    return str(uuid.uuid4())


class Record(BaseModel):
    """
    Representation of a single row in the `records` table.

    Sameness is defined by the store-assigned identity only; attribute values do
    not participate in equality. Unsaved records (no id yet) are only equal to
    themselves.
    """

    id: Optional[int] = Field(None, description="Primary key (BIGSERIAL), assigned by the store.")
    label: str = Field(..., description="Human-readable display label.")
    marker: Optional[str] = Field(None, description="Processing token; NULL means eligible.")
    created_at: Optional[datetime] = Field(None, description="Row creation timestamp.")
    created_by: Optional[str] = Field(None, description="Actor that created the row.")
    updated_at: Optional[datetime] = Field(None, description="Last modification timestamp.")
    updated_by: Optional[str] = Field(None, description="Actor of the last modification.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @property
    def is_eligible(self) -> bool:
        return self.marker is None

    def with_marker(self, token: str) -> "Record":
        """Return a copy of this record carrying the given marker token."""
        return self.model_copy(update={"marker": token})

    def __eq__(self, other: Any) -> bool:
        if self is other:
            return True
        if not isinstance(other, Record):
            return NotImplemented
        return self.id is not None and self.id == other.id

    def __hash__(self) -> int:
        if self.id is None:
            return id(self)
        return hash((Record, self.id))


@dataclass(frozen=True)
class Predicate:
    """
    A named record filter usable both in SQL and in-process.

    `where_sql` must be a static fragment (no user input); it is embedded in the
    scan query by the Postgres gateway.
    """

    name: str
    where_sql: str
    test: Callable[[Record], bool]

    def matches(self, record: Record) -> bool:
        return self.test(record)


UNPROCESSED = Predicate(
    name="marker_is_null",
    where_sql="marker IS NULL",
    test=lambda record: record.marker is None,
)


__all__ = ["Record", "Predicate", "UNPROCESSED", "new_token"]

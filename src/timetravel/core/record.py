"""
Record views – *pure Pydantic* (no SQLAlchemy imports).

A Record is computed from one row of a version chain and is never mutated
in place; writes go through the store and hand back a fresh Record.
"""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field, PositiveInt


class RecordV1(BaseModel):
    """Non-versioned view: ``{"id": int, "data": {str: str}}``."""

    id: PositiveInt
    data: Dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class Record(BaseModel):
    """One version of a record.

    Serialised with ``by_alias=True`` it matches the versioned wire format
    ``{"id", "version", "updatedTimestamp", "reportedTimestamp", "data"}``.
    """

    id: PositiveInt
    version: PositiveInt
    effective_timestamp: int = Field(alias="updatedTimestamp")
    reported_timestamp: int = Field(alias="reportedTimestamp")
    attributes: Dict[str, str] = Field(default_factory=dict, alias="data")

    model_config = {"frozen": True, "populate_by_name": True}

    def to_v1(self) -> RecordV1:
        return RecordV1(id=self.id, data=dict(self.attributes))

    def to_json(self) -> Dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)

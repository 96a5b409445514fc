"""Door event Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .common import isoformat_utc


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

# Range and enum checks live in the ledger so the transport reports them
# as validation failures rather than body-shape errors.

class EventCreate(BaseModel):
    """A button press: which door, which lane/direction."""
    door_number: int
    event_type: str


class UndoLastRequest(BaseModel):
    door_number: int
    event_type: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    door_number: int
    event_type: str
    timestamp_utc: datetime

    @field_serializer("timestamp_utc")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat_utc(value)


class EventList(BaseModel):
    events: List[EventRead] = Field(default_factory=list)


class CleanupResult(BaseModel):
    deleted_count: int
    retention_days: int

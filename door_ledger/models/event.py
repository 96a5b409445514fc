"""Door event model (append-only apart from the one-way soft-delete marker)."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from door_ledger_shared.schemas.common import DOOR_MAX, DOOR_MIN, EVENT_TYPE_VALUES

_EVENT_TYPES_SQL = ", ".join(f"'{v}'" for v in EVENT_TYPE_VALUES)


class Event(SQLModel, table=True):
    __tablename__ = "events"
    __table_args__ = (
        sa.CheckConstraint(
            f"door_number >= {DOOR_MIN} AND door_number <= {DOOR_MAX}",
            name="ck_events_door_number_range",
        ),
        sa.CheckConstraint(
            f"event_type IN ({_EVENT_TYPES_SQL})",
            name="ck_events_event_type_valid",
        ),
        # undo-last / last lookup
        sa.Index("ix_events_button_latest", "door_number", "event_type", "timestamp_utc", "id"),
        # retention purge
        sa.Index("ix_events_created_at", "created_at"),
        # recent + export
        sa.Index(
            "ix_events_active_timestamp",
            "timestamp_utc",
            "id",
            postgresql_where=sa.text("deleted_at IS NULL"),
            sqlite_where=sa.text("deleted_at IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    door_number: int = Field(nullable=False)
    event_type: str = Field(nullable=False, sa_type=sa.String(10))
    timestamp_utc: datetime = Field(nullable=False, sa_type=sa.DateTime())
    created_at: datetime = Field(nullable=False, sa_type=sa.DateTime())
    deleted_at: Optional[datetime] = Field(default=None, nullable=True, sa_type=sa.DateTime())

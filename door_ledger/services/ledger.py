"""
Ledger service layer: validation and undo/retention policy over the event store.

Handles:
- Recording button presses with server-assigned timestamps
- One-way undo, by id or "last event for this button"
- Recent listing with a bounded limit
- CSV export of active events
- Retention cleanup

The service keeps no state between calls. Every operation goes to the
store, which is the single source of truth, so any number of service
instances can share one database.

``undo_last`` and a concurrent ``record`` on the same button are not
serialised. Undo targets whatever is newest at the moment it reads; if a new
press lands between that read and the update, the older event is still the
one undone. The store's conditional update guarantees that two concurrent
undos never both succeed on the same row.
"""

from __future__ import annotations

from datetime import timedelta
from typing import AsyncIterator, Sequence

import structlog

from door_ledger.core.errors import NotFoundError, ValidationError
from door_ledger.models.base import Clock, utcnow
from door_ledger.models.event import Event
from door_ledger.services.export import export_active, export_csv
from door_ledger.services.store import EventStore
from door_ledger_shared.schemas.common import DOOR_MAX, DOOR_MIN, EventType

log = structlog.get_logger()

DEFAULT_RECENT_LIMIT = 10
MAX_RECENT_LIMIT = 500
DEFAULT_RETENTION_DAYS = 7
MAX_RETENTION_DAYS = 36500

# The id column is a signed 32-bit INTEGER.
MAX_EVENT_ID = 2**31 - 1


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_door_number(door_number: object) -> int:
    if isinstance(door_number, bool) or not isinstance(door_number, int):
        raise ValidationError("door_number must be an integer")
    if not DOOR_MIN <= door_number <= DOOR_MAX:
        raise ValidationError(f"door_number must be between {DOOR_MIN} and {DOOR_MAX}")
    return door_number


def validate_event_type(event_type: object) -> EventType:
    if isinstance(event_type, EventType):
        return event_type
    try:
        return EventType(event_type)
    except ValueError:
        allowed = ", ".join(e.value for e in EventType)
        raise ValidationError(f"event_type must be one of {allowed}") from None


class LedgerService:
    def __init__(
        self,
        store: EventStore,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        max_recent_limit: int = MAX_RECENT_LIMIT,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._retention_days = retention_days
        self._max_recent_limit = max_recent_limit
        self._clock = clock

    @property
    def retention_days(self) -> int:
        return self._retention_days

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record(self, door_number: int, event_type: EventType | str) -> Event:
        """Validate and persist a button press.

        The returned event's ``timestamp_utc`` is the authoritative time of
        occurrence. Callers cannot supply one.
        """
        door = validate_door_number(door_number)
        kind = validate_event_type(event_type)

        event = await self._store.insert(door, kind)
        log.info(
            "ledger.event_recorded",
            event_id=event.id,
            door_number=door,
            event_type=kind.value,
        )
        return event

    async def undo(self, event_id: int) -> None:
        """Soft-delete one event by id."""
        if isinstance(event_id, bool) or not isinstance(event_id, int):
            raise ValidationError("event_id must be an integer")
        if not 1 <= event_id <= MAX_EVENT_ID:
            raise NotFoundError(f"Event {event_id} not found or already deleted")

        if not await self._store.soft_delete(event_id):
            raise NotFoundError(f"Event {event_id} not found or already deleted")
        log.info("ledger.event_undone", event_id=event_id)

    async def undo_last(self, door_number: int, event_type: EventType | str) -> Event:
        """Soft-delete the newest active event for one button and return it."""
        event = await self.last(door_number, event_type)

        if not await self._store.soft_delete(event.id):
            # Lost a race with another undo of the same row.
            raise NotFoundError(f"Event {event.id} not found or already deleted")
        log.info(
            "ledger.event_undone",
            event_id=event.id,
            door_number=event.door_number,
            event_type=event.event_type,
        )
        return event

    async def cleanup(self, retention_days: int | None = None) -> int:
        """Purge everything created more than ``retention_days`` ago."""
        days = self._retention_days if retention_days is None else retention_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValidationError("retention_days must be a positive integer")
        if days > MAX_RETENTION_DAYS:
            raise ValidationError(f"retention_days must be at most {MAX_RETENTION_DAYS}")

        cutoff = self._clock() - timedelta(days=days)
        deleted = await self._store.purge_older_than(cutoff)
        log.info(
            "ledger.cleanup_completed",
            deleted_count=deleted,
            retention_days=days,
            cutoff=cutoff.isoformat(),
        )
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def last(self, door_number: int, event_type: EventType | str) -> Event:
        door = validate_door_number(door_number)
        kind = validate_event_type(event_type)

        event = await self._store.find_last_active(door, kind)
        if event is None:
            raise NotFoundError(f"No events found for door {door} {kind.value}")
        return event

    async def recent(self, limit: int | None = None) -> Sequence[Event]:
        """Newest active events. Limits above the configured maximum are clamped."""
        if limit is None:
            limit = DEFAULT_RECENT_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        return await self._store.list_active(min(limit, self._max_recent_limit))

    def export_active(self) -> AsyncIterator[str]:
        """One serialized CSV line per active event, newest first, no header."""
        return export_active(self._store.list_all_active())

    def export_csv(self) -> AsyncIterator[str]:
        """Full CSV document: header line, then ``export_active`` lines."""
        return export_csv(self._store.list_all_active())

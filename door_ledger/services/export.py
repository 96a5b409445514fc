"""
CSV export of active events.

Rows are produced one at a time from the store's cursor, so an export of the
full retention window never holds more than one fetch batch in memory.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import AsyncIterable, AsyncIterator

from door_ledger.models.event import Event
from door_ledger_shared.schemas.common import isoformat_utc

EXPORT_FIELDS = ("id", "door_number", "event_type", "timestamp_utc")


def _csv_line(values) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(values)
    return buf.getvalue()


def csv_header() -> str:
    return _csv_line(EXPORT_FIELDS)


def serialize_event(event: Event) -> str:
    """One CSV line in ``EXPORT_FIELDS`` order."""
    return _csv_line(
        (event.id, event.door_number, event.event_type, isoformat_utc(event.timestamp_utc))
    )


async def export_active(events: AsyncIterable[Event]) -> AsyncIterator[str]:
    """Serialize each event as it arrives; no header."""
    async for event in events:
        yield serialize_event(event)


async def export_csv(events: AsyncIterable[Event]) -> AsyncIterator[str]:
    """Header line followed by one line per event."""
    yield csv_header()
    async for line in export_active(events):
        yield line


def export_filename(now: datetime) -> str:
    """``door_events_2026-10-19T08-30-00.csv`` for the given moment."""
    return f"door_events_{now.strftime('%Y-%m-%dT%H-%M-%S')}.csv"

"""
Door event endpoints.

- POST   /events            record a button press
- DELETE /events/{id}       undo one event
- POST   /events/undo-last  undo the newest event for a button
- GET    /events/last       newest active event for a button
- GET    /events/recent     newest active events
- GET    /events/export     streamed CSV of all active events
- POST   /cleanup           run retention cleanup now

Errors raised by the ledger are mapped to status codes by the handlers
registered in ``door_ledger.main``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from door_ledger.api.deps import get_ledger, get_metrics
from door_ledger.core.metrics import MetricsCollector
from door_ledger.services.export import csv_header, export_filename
from door_ledger.services.ledger import DEFAULT_RECENT_LIMIT, LedgerService
from door_ledger_shared.schemas.events import (
    CleanupResult,
    EventCreate,
    EventList,
    EventRead,
    UndoLastRequest,
)

router = APIRouter()
router_maintenance = APIRouter()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
async def record_event_endpoint(
    body: EventCreate,
    ledger: LedgerService = Depends(get_ledger),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Record a door event. The server assigns the timestamp."""
    event = await ledger.record(body.door_number, body.event_type)
    metrics.inc("events_recorded_total")
    return EventRead.model_validate(event)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def undo_event_endpoint(
    event_id: int,
    ledger: LedgerService = Depends(get_ledger),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Undo (soft-delete) one event. 404 if absent or already undone."""
    await ledger.undo(event_id)
    metrics.inc("events_undone_total")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/undo-last", response_model=EventRead)
async def undo_last_endpoint(
    body: UndoLastRequest,
    ledger: LedgerService = Depends(get_ledger),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Undo the newest active event for one button and return it."""
    event = await ledger.undo_last(body.door_number, body.event_type)
    metrics.inc("events_undone_total")
    return EventRead.model_validate(event)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/recent", response_model=EventList)
async def recent_events_endpoint(
    limit: int = Query(DEFAULT_RECENT_LIMIT),
    ledger: LedgerService = Depends(get_ledger),
):
    """Newest active events first. Large limits are clamped server-side."""
    events = await ledger.recent(limit)
    return EventList(events=[EventRead.model_validate(e) for e in events])


@router.get("/last", response_model=EventRead)
async def last_event_endpoint(
    door_number: int,
    event_type: str,
    ledger: LedgerService = Depends(get_ledger),
):
    """Newest active event for one button (what undo-last would remove)."""
    event = await ledger.last(door_number, event_type)
    return EventRead.model_validate(event)


@router.get("/export")
async def export_events_endpoint(
    ledger: LedgerService = Depends(get_ledger),
):
    """Stream every active event as CSV, newest first.

    The first row is fetched before the response starts so a store outage
    is reported as an error status rather than a truncated 200. The row
    stream is closed by the body on the way out and again by a background
    task after the response, which covers a body that was never iterated.
    """
    rows = ledger.export_active()
    try:
        first = await rows.__anext__()
    except StopAsyncIteration:
        first = None

    async def _body():
        try:
            yield csv_header()
            if first is not None:
                yield first
                async for line in rows:
                    yield line
        finally:
            await rows.aclose()

    filename = export_filename(datetime.now(timezone.utc))
    return StreamingResponse(
        _body(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        background=BackgroundTask(rows.aclose),
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@router_maintenance.post("/cleanup", response_model=CleanupResult)
async def cleanup_endpoint(
    retention_days: Optional[int] = Query(None),
    ledger: LedgerService = Depends(get_ledger),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Purge events older than the retention window (defaults to configuration)."""
    days = retention_days if retention_days is not None else ledger.retention_days
    deleted = await ledger.cleanup(days)
    metrics.inc("events_purged_total", deleted)
    return CleanupResult(deleted_count=deleted, retention_days=days)

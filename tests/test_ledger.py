"""
Tests for the ledger service.

Tests cover:
- Input validation before any store access
- Undo semantics (one-way, by id and by button)
- Recent listing limits
- Export completeness and ordering
- Retention cleanup window and idempotence
- Concurrent recording
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from door_ledger.core.errors import NotFoundError, TransientStoreError, ValidationError
from door_ledger.models.base import utcnow
from door_ledger.services.ledger import DEFAULT_RECENT_LIMIT, LedgerService
from door_ledger_shared.schemas.common import EventType

T0 = datetime(2026, 10, 19, 10, 0, 0)


# ---------------------------------------------------------------------------
# record
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("door", [1, 13, 26])
@pytest.mark.parametrize("kind", list(EventType))
@pytest.mark.asyncio
async def test_record_valid_inputs(ledger: LedgerService, door, kind):
    before = utcnow()
    event = await ledger.record(door, kind)
    after = utcnow()

    assert event.door_number == door
    assert event.event_type == kind.value
    assert before <= event.timestamp_utc <= after


@pytest.mark.asyncio
async def test_record_ids_are_unique(ledger: LedgerService):
    ids = [(await ledger.record(5, "A_IN")).id for _ in range(10)]
    assert len(set(ids)) == 10


@pytest.mark.parametrize("door", [0, 27, -1])
@pytest.mark.asyncio
async def test_record_rejects_door_out_of_range(ledger: LedgerService, door):
    with pytest.raises(ValidationError):
        await ledger.record(door, EventType.A_IN)
    assert await ledger.recent() == []


@pytest.mark.parametrize("kind", ["C_IN", "", "a_in", None])
@pytest.mark.asyncio
async def test_record_rejects_unknown_event_type(ledger: LedgerService, kind):
    with pytest.raises(ValidationError):
        await ledger.record(5, kind)
    assert await ledger.recent() == []


@pytest.mark.parametrize("door", ["5", 5.0, True])
@pytest.mark.asyncio
async def test_record_rejects_non_integer_door(ledger: LedgerService, door):
    with pytest.raises(ValidationError):
        await ledger.record(door, EventType.A_IN)


@pytest.mark.asyncio
async def test_validation_happens_before_store_access():
    store = AsyncMock()
    ledger = LedgerService(store)
    with pytest.raises(ValidationError):
        await ledger.record(27, "A_IN")
    store.insert.assert_not_called()


@pytest.mark.asyncio
async def test_record_propagates_transient_failure_without_retry():
    store = AsyncMock()
    store.insert.side_effect = TransientStoreError("events.insert", "timed out")
    ledger = LedgerService(store)

    with pytest.raises(TransientStoreError):
        await ledger.record(5, "A_IN")
    assert store.insert.await_count == 1


@pytest.mark.asyncio
async def test_fifty_concurrent_records_none_lost(ledger: LedgerService):
    events = await asyncio.gather(*(ledger.record(9, EventType.B_IN) for _ in range(50)))

    assert len({e.id for e in events}) == 50
    assert len(await ledger.recent(100)) == 50


# ---------------------------------------------------------------------------
# undo
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_undo_is_one_way(ledger: LedgerService):
    event = await ledger.record(2, EventType.A_OUT)

    await ledger.undo(event.id)
    with pytest.raises(NotFoundError):
        await ledger.undo(event.id)


@pytest.mark.asyncio
async def test_undo_unknown_id(ledger: LedgerService):
    with pytest.raises(NotFoundError):
        await ledger.undo(999)


@pytest.mark.parametrize("event_id", [0, -1, 2**31, 2**70])
@pytest.mark.asyncio
async def test_undo_out_of_range_id_is_not_found(event_id):
    store = AsyncMock()
    ledger = LedgerService(store)

    with pytest.raises(NotFoundError):
        await ledger.undo(event_id)
    store.soft_delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_undo_oversized_id_against_database(ledger: LedgerService):
    await ledger.record(1, EventType.A_IN)
    with pytest.raises(NotFoundError):
        await ledger.undo(2**70)


@pytest.mark.asyncio
async def test_undo_last_tie_break_by_id(store_at):
    ledger = LedgerService(store_at(T0))
    e1 = await ledger.record(5, EventType.A_IN)
    e2 = await ledger.record(5, EventType.A_IN)
    assert e1.timestamp_utc == e2.timestamp_utc
    assert e2.id > e1.id

    undone = await ledger.undo_last(5, EventType.A_IN)

    assert undone.id == e2.id
    remaining = await ledger.last(5, EventType.A_IN)
    assert remaining.id == e1.id


@pytest.mark.asyncio
async def test_undo_last_is_isolated_per_button(ledger: LedgerService):
    door5 = [await ledger.record(5, EventType.A_IN) for _ in range(3)]
    await ledger.record(6, EventType.A_IN)

    await ledger.undo_last(6, EventType.A_IN)

    active_ids = {e.id for e in await ledger.recent(100)}
    assert {e.id for e in door5} == active_ids


@pytest.mark.asyncio
async def test_undo_last_walks_back_through_history(ledger: LedgerService):
    first = await ledger.record(1, EventType.B_OUT)
    second = await ledger.record(1, EventType.B_OUT)

    assert (await ledger.undo_last(1, "B_OUT")).id == second.id
    assert (await ledger.undo_last(1, "B_OUT")).id == first.id
    with pytest.raises(NotFoundError):
        await ledger.undo_last(1, "B_OUT")


@pytest.mark.asyncio
async def test_undo_last_validates_input(ledger: LedgerService):
    with pytest.raises(ValidationError):
        await ledger.undo_last(0, "A_IN")
    with pytest.raises(ValidationError):
        await ledger.undo_last(1, "X")


@pytest.mark.asyncio
async def test_undo_last_lost_race_reports_not_found():
    store = AsyncMock()
    store.find_last_active.return_value = SimpleNamespace(id=7, door_number=1, event_type="A_IN")
    store.soft_delete.return_value = False
    ledger = LedgerService(store)

    with pytest.raises(NotFoundError):
        await ledger.undo_last(1, "A_IN")


@pytest.mark.asyncio
async def test_last_when_nothing_recorded(ledger: LedgerService):
    with pytest.raises(NotFoundError):
        await ledger.last(3, EventType.A_IN)


# ---------------------------------------------------------------------------
# recent
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_recent_default_limit(ledger: LedgerService):
    for _ in range(DEFAULT_RECENT_LIMIT + 5):
        await ledger.record(4, EventType.A_IN)
    assert len(await ledger.recent()) == DEFAULT_RECENT_LIMIT


@pytest.mark.asyncio
async def test_recent_excludes_undone_and_orders_newest_first(store_at):
    e1 = await LedgerService(store_at(T0)).record(1, "A_IN")
    e2 = await LedgerService(store_at(T0 + timedelta(seconds=1))).record(1, "A_OUT")
    e3 = await LedgerService(store_at(T0 + timedelta(seconds=2))).record(1, "B_IN")
    ledger = LedgerService(store_at(T0))
    await ledger.undo(e2.id)

    assert [e.id for e in await ledger.recent()] == [e3.id, e1.id]


@pytest.mark.parametrize("limit", [0, -3])
@pytest.mark.asyncio
async def test_recent_rejects_non_positive_limit(ledger: LedgerService, limit):
    with pytest.raises(ValidationError):
        await ledger.recent(limit)


@pytest.mark.asyncio
async def test_recent_clamps_large_limit():
    store = AsyncMock()
    store.list_active.return_value = []
    ledger = LedgerService(store, max_recent_limit=50)

    await ledger.recent(10_000)
    store.list_active.assert_awaited_once_with(50)


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_export_yields_one_row_per_active_event(store_at):
    recorded = []
    for i in range(6):
        ledger = LedgerService(store_at(T0 + timedelta(seconds=i)))
        recorded.append(await ledger.record(i + 1, EventType.A_IN))
    await ledger.undo(recorded[0].id)
    await ledger.undo(recorded[3].id)

    rows = [line async for line in ledger.export_active()]

    assert len(rows) == 4
    expected_ids = [e.id for e in reversed(recorded) if e.id not in (recorded[0].id, recorded[3].id)]
    assert [int(r.split(",")[0]) for r in rows] == expected_ids


@pytest.mark.asyncio
async def test_export_csv_has_header(ledger: LedgerService):
    event = await ledger.record(12, EventType.B_OUT)
    lines = [line async for line in ledger.export_csv()]
    assert lines[0] == "id,door_number,event_type,timestamp_utc\n"
    assert lines[1].startswith(f"{event.id},12,B_OUT,")
    assert len(lines) == 2


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cleanup_retention_window(store_at):
    now = utcnow()
    old = await store_at(now - timedelta(days=8)).insert(1, EventType.A_IN)
    recent = await store_at(now - timedelta(days=6)).insert(1, EventType.A_IN)

    ledger = LedgerService(store_at(now), retention_days=7)
    assert await ledger.cleanup(7) == 1

    remaining = {e.id for e in await ledger.recent(10)}
    assert remaining == {recent.id}
    assert old.id not in remaining


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(store_at):
    now = utcnow()
    for days in (8, 9, 10):
        await store_at(now - timedelta(days=days)).insert(2, EventType.B_IN)

    ledger = LedgerService(store_at(now))
    assert await ledger.cleanup(7) == 3
    assert await ledger.cleanup(7) == 0


@pytest.mark.asyncio
async def test_cleanup_uses_configured_default():
    store = AsyncMock()
    store.purge_older_than.return_value = 0
    ledger = LedgerService(store, retention_days=3, clock=lambda: T0)

    await ledger.cleanup()
    store.purge_older_than.assert_awaited_once_with(T0 - timedelta(days=3))


@pytest.mark.parametrize("days", [0, -1, 36501, 10**9])
@pytest.mark.asyncio
async def test_cleanup_rejects_bad_retention(ledger: LedgerService, days):
    with pytest.raises(ValidationError):
        await ledger.cleanup(days)


@pytest.mark.asyncio
async def test_cleanup_accepts_maximum_retention(ledger: LedgerService):
    await ledger.record(1, EventType.A_IN)
    assert await ledger.cleanup(36500) == 0

"""
Event store: the only component that talks to the events table.

Every public method opens its own session from the injected factory, runs
under a per-call timeout, and releases the connection on every exit path.
All correctness-critical mutations are single statements so the database's
row-level atomicity is what serialises concurrent callers:

- insert assigns id and timestamps in one INSERT
- soft_delete is a conditional UPDATE ... WHERE deleted_at IS NULL
- purge_older_than is a single DELETE by created_at

Driver and SQLAlchemy exceptions never leave this module; they are
translated into the ledger error taxonomy by ``_guard``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Sequence, TypeVar

import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from door_ledger.core.errors import IntegrityViolation, StoreError, TransientStoreError
from door_ledger.models.base import Clock, utcnow
from door_ledger.models.event import Event
from door_ledger_shared.schemas.common import DOOR_MAX, DOOR_MIN, EVENT_TYPE_VALUES, EventType

log = structlog.get_logger()

T = TypeVar("T")

DEFAULT_CALL_TIMEOUT = 10.0
DEFAULT_BATCH_SIZE = 500

# "Most recent" is timestamp descending, then id descending for identical
# timestamps. Every ordered read uses this.
NEWEST_FIRST = (Event.timestamp_utc.desc(), Event.id.desc())


def _active():
    return Event.deleted_at.is_(None)


class EventStore:
    """Durable table of door events.

    Args:
        session_factory: Callable returning a new ``AsyncSession`` bound to
            the pooled engine.
        call_timeout: Upper bound in seconds for a single store call,
            including connection acquisition.
        batch_size: Rows fetched per round trip when streaming.
        clock: Source of server time for ``timestamp_utc``, ``created_at``
            and ``deleted_at``.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._call_timeout = call_timeout
        self._batch_size = batch_size
        self._clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except IntegrityError as exc:
            log.error(
                "event_store.integrity_violation",
                operation=operation,
                error=str(exc.orig),
            )
            raise IntegrityViolation(operation, str(exc.orig)) from exc
        except (asyncio.TimeoutError, PoolTimeoutError) as exc:
            log.warning("event_store.timeout", operation=operation, timeout=self._call_timeout)
            raise TransientStoreError(operation, "timed out") from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            log.warning("event_store.unavailable", operation=operation, error=str(exc))
            raise TransientStoreError(operation, str(exc)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                log.warning("event_store.connection_lost", operation=operation)
                raise TransientStoreError(operation, "connection lost") from exc
            log.error("event_store.failed", operation=operation, error=str(exc))
            raise StoreError(operation, str(exc)) from exc
        except SQLAlchemyError as exc:
            log.error("event_store.failed", operation=operation, error=str(exc))
            raise StoreError(operation, str(exc)) from exc

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _in_session() -> T:
            async with self._session_factory() as session:
                return await work(session)

        async with self._guard(operation):
            return await asyncio.wait_for(_in_session(), timeout=self._call_timeout)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, door_number: int, event_type: EventType | str) -> Event:
        """Insert a new active event stamped with the current server time."""
        value = event_type.value if isinstance(event_type, EventType) else event_type
        door_ok = (
            isinstance(door_number, int)
            and not isinstance(door_number, bool)
            and DOOR_MIN <= door_number <= DOOR_MAX
        )
        if not door_ok or value not in EVENT_TYPE_VALUES:
            log.error(
                "event_store.integrity_violation",
                operation="events.insert",
                door_number=door_number,
                event_type=value,
            )
            raise IntegrityViolation(
                "events.insert", f"rejected door_number={door_number!r} event_type={value!r}"
            )

        async def _insert(session: AsyncSession) -> Event:
            now = self._clock()
            event = Event(
                door_number=door_number,
                event_type=value,
                timestamp_utc=now,
                created_at=now,
            )
            session.add(event)
            await session.commit()
            return event

        return await self._run("events.insert", _insert)

    async def soft_delete(self, event_id: int) -> bool:
        """Mark an active event deleted. False if absent or already deleted."""

        async def _soft_delete(session: AsyncSession) -> bool:
            stmt = (
                update(Event)
                .where(Event.id == event_id, _active())
                .values(deleted_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

        return await self._run("events.soft_delete", _soft_delete)

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Hard-delete every row, active or not, created strictly before ``cutoff``."""

        async def _purge(session: AsyncSession) -> int:
            stmt = (
                delete(Event)
                .where(Event.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

        return await self._run("events.purge", _purge)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_last_active(
        self, door_number: int, event_type: EventType | str
    ) -> Event | None:
        value = event_type.value if isinstance(event_type, EventType) else event_type

        async def _find(session: AsyncSession) -> Event | None:
            stmt = (
                select(Event)
                .where(
                    Event.door_number == door_number,
                    Event.event_type == value,
                    _active(),
                )
                .order_by(*NEWEST_FIRST)
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

        return await self._run("events.find_last_active", _find)

    async def list_active(self, limit: int) -> Sequence[Event]:
        async def _list(session: AsyncSession) -> Sequence[Event]:
            stmt = select(Event).where(_active()).order_by(*NEWEST_FIRST).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self._run("events.list_active", _list)

    async def list_all_active(self) -> AsyncIterator[Event]:
        """Stream every active event, newest first, one batch at a time.

        Uses a server-side cursor; only ``batch_size`` rows are resident at
        once. Each batch fetch is bounded by the call timeout.
        """
        operation = "events.list_all_active"
        stmt = (
            select(Event)
            .where(_active())
            .order_by(*NEWEST_FIRST)
            .execution_options(yield_per=self._batch_size)
        )

        async with self._guard(operation):
            async with self._session_factory() as session:
                result = await asyncio.wait_for(
                    session.stream_scalars(stmt), timeout=self._call_timeout
                )
                batches = result.partitions()
                while True:
                    try:
                        batch = await asyncio.wait_for(
                            batches.__anext__(), timeout=self._call_timeout
                        )
                    except StopAsyncIteration:
                        break
                    for event in batch:
                        yield event

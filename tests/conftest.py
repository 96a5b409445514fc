"""
Shared fixtures: a temporary SQLite ledger per test.

Store and ledger tests run against a real database file through aiosqlite so
conditional updates, ordering and purge behave as they do in production.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from door_ledger.core.config import Settings
from door_ledger.core.database import create_engine, create_session_factory, init_db
from door_ledger.services.ledger import LedgerService
from door_ledger.services.store import EventStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        pool_timeout_seconds=10.0,
        call_timeout_seconds=10.0,
        cleanup_enabled=False,
        auto_create_schema=True,
        log_format="text",
    )


@pytest.fixture
async def engine(settings):
    eng = create_engine(settings)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> EventStore:
    return EventStore(session_factory)


@pytest.fixture
def ledger(store) -> LedgerService:
    return LedgerService(store)


@pytest.fixture
def store_at(session_factory):
    """Build a store whose clock is pinned to a given moment."""

    def _make(moment: datetime, **kwargs) -> EventStore:
        return EventStore(session_factory, clock=lambda: moment, **kwargs)

    return _make

"""
Database engine and session factory construction.

The engine owns the bounded connection pool. It is built once at startup
and handed to the event store; nothing in this module holds it globally.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from door_ledger.core.config import Settings

# Imported for its side effect of registering the events table on the metadata.
from door_ledger import models  # noqa: F401


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine with a pool sized and timed from settings."""
    url = make_url(settings.database_url)
    kwargs: dict = {"echo": settings.debug}

    if url.get_backend_name() == "postgresql":
        kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout_seconds,
            pool_pre_ping=True,
            connect_args={
                "timeout": settings.pool_timeout_seconds,
                "command_timeout": settings.call_timeout_seconds,
            },
        )
    elif url.database not in (None, "", ":memory:"):
        # File-backed SQLite gets a queue pool; in-memory databases use a static one.
        kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout_seconds,
        )

    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

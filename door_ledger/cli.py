"""
Command line entry point.

    door-ledger serve               run the API server
    door-ledger init-db             create the events table and indexes
    door-ledger cleanup [-d DAYS]   one retention pass (for an external cron)
    door-ledger export [-o FILE]    write active events as CSV
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from door_ledger.core.config import Settings, get_settings
from door_ledger.core.database import create_engine, create_session_factory, init_db
from door_ledger.core.errors import LedgerError
from door_ledger.core.logging import configure_logging
from door_ledger.services.ledger import LedgerService
from door_ledger.services.store import EventStore
from door_ledger.tasks.retention import run_scheduled_cleanup

log = structlog.get_logger()


def _build_ledger(settings: Settings, engine) -> LedgerService:
    store = EventStore(
        create_session_factory(engine),
        call_timeout=settings.call_timeout_seconds,
        batch_size=settings.export_batch_size,
    )
    return LedgerService(
        store,
        retention_days=settings.retention_days,
        max_recent_limit=settings.recent_limit_max,
    )


async def _init_db(settings: Settings) -> int:
    engine = create_engine(settings)
    try:
        await init_db(engine)
    finally:
        await engine.dispose()
    log.info("cli.schema_created")
    return 0


async def _cleanup(settings: Settings, retention_days: int) -> int:
    engine = create_engine(settings)
    try:
        deleted = await run_scheduled_cleanup(_build_ledger(settings, engine), retention_days)
    finally:
        await engine.dispose()
    return 1 if deleted is None else 0


async def _export(settings: Settings, out) -> int:
    engine = create_engine(settings)
    try:
        ledger = _build_ledger(settings, engine)
        async for line in ledger.export_csv():
            out.write(line)
    except LedgerError as exc:
        log.error("cli.export_failed", error=str(exc))
        return 1
    finally:
        await engine.dispose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="door-ledger", description="Door event ledger")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    sub.add_parser("init-db", help="Create the events table and indexes")

    cleanup = sub.add_parser("cleanup", help="Purge events older than the retention window")
    cleanup.add_argument("-d", "--retention-days", type=int, default=None)

    export = sub.add_parser("export", help="Write active events as CSV")
    export.add_argument("-o", "--output", default="-", help="Output file (default: stdout)")

    return parser


def run(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, settings.log_format, stream=sys.stderr)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "door_ledger.main:app",
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
        return 0

    if args.command == "init-db":
        return asyncio.run(_init_db(settings))

    if args.command == "cleanup":
        days = args.retention_days if args.retention_days is not None else settings.retention_days
        return asyncio.run(_cleanup(settings, days))

    if args.command == "export":
        if args.output == "-":
            return asyncio.run(_export(settings, sys.stdout))
        with open(args.output, "w", newline="") as f:
            return asyncio.run(_export(settings, f))

    return 2


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()

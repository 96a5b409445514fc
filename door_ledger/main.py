"""
Door Ledger API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from door_ledger.api.v1 import router as api_v1_router
from door_ledger.core.config import Settings, get_settings
from door_ledger.core.database import create_engine, create_session_factory, init_db
from door_ledger.core.errors import (
    IntegrityViolation,
    NotFoundError,
    StoreError,
    TransientStoreError,
    ValidationError,
)
from door_ledger.core.logging import configure_logging
from door_ledger.core.metrics import MetricsCollector
from door_ledger.services.ledger import LedgerService
from door_ledger.services.store import EventStore
from door_ledger.tasks.retention import RetentionScheduler

log = structlog.get_logger()

RETRY_AFTER_SECONDS = 2


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def _transient_store_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "Event store temporarily unavailable, retry"},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if isinstance(exc, IntegrityViolation):
        log.error("api.integrity_violation", path=request.url.path, operation=exc.operation)
    return JSONResponse(status_code=500, content={"error": "Event store operation failed"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(TransientStoreError, _transient_store_handler)
    app.add_exception_handler(StoreError, _store_error_handler)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Door Ledger",
        description="Door event recording with undo, export and retention.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.metrics = MetricsCollector()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )
    register_error_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/metrics", tags=["System"], response_class=PlainTextResponse)
    async def metrics_endpoint():
        return app.state.metrics.to_prometheus()

    @app.on_event("startup")
    async def on_startup():
        configure_logging(settings.log_level, settings.log_format)

        engine = create_engine(settings)
        if settings.auto_create_schema:
            await init_db(engine)

        store = EventStore(
            create_session_factory(engine),
            call_timeout=settings.call_timeout_seconds,
            batch_size=settings.export_batch_size,
        )
        ledger = LedgerService(
            store,
            retention_days=settings.retention_days,
            max_recent_limit=settings.recent_limit_max,
        )
        app.state.engine = engine
        app.state.ledger = ledger

        if settings.cleanup_enabled:
            scheduler = RetentionScheduler(
                ledger,
                settings.retention_days,
                app.state.metrics,
                hour=settings.cleanup_hour_utc,
                minute=settings.cleanup_minute_utc,
            )
            await scheduler.start()
            app.state.scheduler = scheduler

        log.info(
            "door_ledger.starting",
            retention_days=settings.retention_days,
            pool_size=settings.pool_size,
            cleanup_enabled=settings.cleanup_enabled,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("door_ledger.shutting_down")
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()

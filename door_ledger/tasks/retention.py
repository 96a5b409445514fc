"""
Daily retention cleanup.

``run_scheduled_cleanup`` is one tick: a single cleanup call whose outcome is
logged and counted. ``RetentionScheduler`` fires that tick once per day at a
fixed UTC wall-clock time from inside the server process. An external cron
can drive the same tick through ``door-ledger cleanup`` instead.

A failed tick is not retried. The next fire happens at the next daily
boundary as usual; a skipped day only means the table holds one extra day of
rows until then.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from door_ledger.core.errors import LedgerError
from door_ledger.core.metrics import MetricsCollector
from door_ledger.services.ledger import LedgerService

log = structlog.get_logger()


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_run_after(now: datetime, hour: int = 0, minute: int = 0) -> datetime:
    """The first ``hour:minute`` UTC strictly after ``now``."""
    now = now.astimezone(timezone.utc)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


async def run_scheduled_cleanup(
    ledger: LedgerService,
    retention_days: int,
    metrics: MetricsCollector | None = None,
) -> int | None:
    """Run one cleanup. Returns the purged count, or None if it failed."""
    log.info("retention.cleanup_started", retention_days=retention_days)
    try:
        deleted = await ledger.cleanup(retention_days)
    except LedgerError as exc:
        log.error(
            "retention.cleanup_failed",
            retention_days=retention_days,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if metrics:
            metrics.inc("cleanup_failures_total")
        return None

    if metrics:
        metrics.inc("cleanup_runs_total")
        metrics.inc("events_purged_total", deleted)
        metrics.set_gauge("last_cleanup_deleted_count", deleted)
        metrics.set_gauge("last_cleanup_unixtime", time.time())
    log.info("retention.cleanup_completed", deleted_count=deleted, retention_days=retention_days)
    return deleted


class RetentionScheduler:
    """
    In-process daily trigger for retention cleanup.

    Sleeps until the next ``hour:minute`` UTC, fires one cleanup, repeats.
    """

    def __init__(
        self,
        ledger: LedgerService,
        retention_days: int,
        metrics: MetricsCollector | None = None,
        *,
        hour: int = 0,
        minute: int = 0,
        clock: Callable[[], datetime] = _aware_utcnow,
    ):
        self._ledger = ledger
        self._retention_days = retention_days
        self._metrics = metrics
        self._hour = hour
        self._minute = minute
        self._clock = clock

        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_result: int | None = None
        self._fire_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> int | None:
        """Count purged by the most recent successful fire."""
        return self._last_result

    @property
    def fire_count(self) -> int:
        return self._fire_count

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        log.info(
            "retention.scheduler_started",
            next_run=next_run_after(self._clock(), self._hour, self._minute).isoformat(),
            retention_days=self._retention_days,
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("retention.scheduler_stopped")

    async def _loop(self) -> None:
        previous: datetime | None = None
        while not self._stop_event.is_set():
            now = self._clock().astimezone(timezone.utc)
            # Never schedule the same boundary twice, even if the timer woke early.
            target = next_run_after(max(now, previous) if previous else now, self._hour, self._minute)
            previous = target
            delay = max((target - now).total_seconds(), 0.0)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            self._fire_count += 1
            try:
                result = await run_scheduled_cleanup(
                    self._ledger, self._retention_days, self._metrics
                )
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("retention.tick_crashed")
                continue
            if result is not None:
                self._last_result = result

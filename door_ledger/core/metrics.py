"""
Ledger metrics and Prometheus text exposition.

The ledger's counters and gauges are declared up front in ``COUNTERS`` and
``GAUGES``. Every declared series is exported from process start (counters
at zero, gauges once first set), each with its ``# HELP`` line, and writing
an undeclared name is an error.
"""

from __future__ import annotations

import time

PREFIX = "ledger_"

COUNTERS: dict[str, str] = {
    "events_recorded_total": "Door events recorded through the API.",
    "events_undone_total": "Door events soft-deleted through the API.",
    "events_purged_total": "Rows hard-deleted by retention cleanup.",
    "cleanup_runs_total": "Scheduled cleanup runs that completed.",
    "cleanup_failures_total": "Scheduled cleanup runs that failed.",
}

GAUGES: dict[str, str] = {
    "last_cleanup_deleted_count": "Rows purged by the most recent successful cleanup.",
    "last_cleanup_unixtime": "Unix time of the most recent successful cleanup.",
}


class MetricsCollector:
    """
    Per-process ledger metrics.

    Each server instance exposes its own values; aggregate across instances
    in the scraper.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = dict.fromkeys(COUNTERS, 0)
        self._gauges: dict[str, float] = {}
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        if name not in COUNTERS:
            raise KeyError(f"Unknown counter: {name}")
        self._counters[name] += value

    def set_gauge(self, name: str, value: float) -> None:
        if name not in GAUGES:
            raise KeyError(f"Unknown gauge: {name}")
        self._gauges[name] = value

    def get(self, name: str) -> int | float:
        """Current value of a counter or gauge; 0 if it has no value yet."""
        if name in self._gauges:
            return self._gauges[name]
        return self._counters.get(name, 0)

    def to_prometheus(self) -> str:
        lines = []
        for name, value in self._counters.items():
            lines.append(f"# HELP {PREFIX}{name} {COUNTERS[name]}")
            lines.append(f"# TYPE {PREFIX}{name} counter")
            lines.append(f"{PREFIX}{name} {value}")
        for name, value in sorted(self._gauges.items()):
            lines.append(f"# HELP {PREFIX}{name} {GAUGES[name]}")
            lines.append(f"# TYPE {PREFIX}{name} gauge")
            lines.append(f"{PREFIX}{name} {value}")
        uptime = time.time() - self._start_time
        lines.append(f"# HELP {PREFIX}uptime_seconds Seconds since the process started.")
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {uptime:.1f}")
        return "\n".join(lines) + "\n"

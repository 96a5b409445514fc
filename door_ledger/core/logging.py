"""
structlog configuration shared by the server and the CLI.
"""

from __future__ import annotations

from typing import TextIO

import structlog


def configure_logging(level: str = "info", fmt: str = "json", stream: TextIO | None = None) -> None:
    """Configure structlog with the specified level and format.

    ``stream`` redirects output (the CLI sends logs to stderr so CSV on
    stdout stays clean).
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    kwargs = {}
    if stream is not None:
        kwargs["logger_factory"] = structlog.PrintLoggerFactory(stream)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        **kwargs,
    )

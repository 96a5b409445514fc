"""Clock helpers for server-assigned timestamps."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored column type."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

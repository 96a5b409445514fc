from datetime import datetime, timezone
from enum import Enum

DOOR_MIN = 1
DOOR_MAX = 26

class EventType(str, Enum):
    A_IN = "A_IN"
    A_OUT = "A_OUT"
    B_IN = "B_IN"
    B_OUT = "B_OUT"

EVENT_TYPE_VALUES: tuple[str, ...] = tuple(e.value for e in EventType)


def isoformat_utc(value: datetime) -> str:
    """Render a UTC timestamp as ISO-8601 with microseconds and a trailing Z.

    Naive values are taken to already be UTC, which is how they are stored.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds") + "Z"

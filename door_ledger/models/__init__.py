# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import utcnow  # noqa: F401
from .event import Event  # noqa: F401

"""
Ledger error taxonomy.

Callers only ever see these types. The event store translates SQLAlchemy and
driver exceptions into them, so nothing above the store depends on the
storage engine's error vocabulary.

- ValidationError: bad caller input, raised before any I/O.
- NotFoundError: nothing to undo (absent, already undone) or no last event.
- TransientStoreError: store unreachable or too slow; safe for the caller to retry.
- IntegrityViolation: the store rejected a row the ledger should never have sent.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for ledger failures."""


class ValidationError(LedgerError):
    """Caller input is outside the accepted domain."""


class NotFoundError(LedgerError):
    """The requested event does not exist or is no longer active."""


class StoreError(LedgerError):
    """A store operation failed.

    Args:
        operation: Stable operation identifier (for example ``"events.insert"``).
        details: Optional human-readable context for logs.
    """

    retryable = False

    def __init__(self, operation: str, details: str | None = None) -> None:
        message = operation
        if details:
            message = f"{message}: {details}"
        super().__init__(message)
        self.operation = operation
        self.details = details


class TransientStoreError(StoreError):
    """Connectivity or timeout failure talking to the store."""

    retryable = True


class IntegrityViolation(StoreError):
    """Store-level constraint rejection despite ledger validation."""

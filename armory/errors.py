from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures surfaced to callers of the ledger core.

    ``kind`` is stable and safe to expose to clients; ``message`` is meant for humans.
    """

    kind = 'error'

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    kind = 'validation_error'


class PermissionDenied(LedgerError, PermissionError):
    kind = 'permission_denied'


class NotFound(LedgerError, LookupError):
    kind = 'not_found'


class InsufficientInventory(LedgerError):
    kind = 'insufficient_inventory'

    def __init__(self, message: str = 'Insufficient inventory', *, available: int | None = None, requested: int | None = None) -> None:
        super().__init__(message)
        self.available = available
        self.requested = requested


class Conflict(LedgerError):
    kind = 'conflict'

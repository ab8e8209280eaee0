"""Exception hierarchy for the deal desk.

Transport failures (StoreError) stay inside the sync layer: the cache logs
them and hands back None/False. Everything else here is raised to the
caller, which shows a blocking notification naming the failed action.
"""

from __future__ import annotations


class DealDeskError(Exception):
    """Base class for all deal desk errors."""


class StoreError(DealDeskError):
    """A remote table store call returned an error indicator.

    Args:
        table: Collection the call targeted.
        operation: Store operation name (select, insert, update, ...).
        detail: Backend-specific error text.
    """

    def __init__(self, table: str, operation: str, detail: str) -> None:
        self.table = table
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} on {table} failed: {detail}")


class ValidationError(DealDeskError):
    """User input rejected before any write was attempted."""


class NoActiveDealError(ValidationError):
    """A deal-scoped action was requested with no deal selected."""

    def __init__(self) -> None:
        super().__init__("Please select or create a deal first!")


class WriteFailedError(DealDeskError):
    """A write-through returned no stored record."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"{action} failed; the store did not accept the write")


class CascadeError(DealDeskError):
    """A multi-record write could not be committed as a whole.

    Args:
        message: Human-readable summary naming every partial outcome.
        orphaned: Identity of a record left behind after compensation failed.
    """

    def __init__(self, message: str, orphaned: int | None = None) -> None:
        self.orphaned = orphaned
        super().__init__(message)


class ImportDocumentError(DealDeskError):
    """An import document does not have the export snapshot shape."""

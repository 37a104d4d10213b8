"""
Error types for the logbook backup core.

This module defines every exception raised by the stores, the snapshot
store, the restore engine and the record model:
- LogbookError: Base exception
- StoreUnavailable: Storage resource is not provisioned
- WriteError: A create/delete/insert failed
- RestoreError: A restore stage failed (non-atomic, may be partial)
- ReadError: A fetch/list failed
- MalformedPayload: A stored snapshot payload could not be interpreted
- ValidationError: A record violates its date/status invariants

Invariants:
    - All errors inherit from LogbookError
    - Every error carries a stable code for programmatic handling
    - Messages never include store credentials

How to change safely:
    - Add new error types as subclasses, keep existing codes stable
    - Callers branch on type or code, never on message text
"""

from __future__ import annotations

from typing import Any


class LogbookError(Exception):
    """Base exception for all logbook errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LOGBOOK_ERROR"
        self.details = details or {}


class StoreUnavailable(LogbookError):
    """Storage resource (table/collection) does not exist.

    This is a deployment precondition rather than a runtime fault, so
    callers can show a "feature not set up" message instead of a generic
    failure.
    """

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details={"resource": resource},
        )
        self.resource = resource


class WriteError(LogbookError):
    """A create, delete or insert against a store failed.

    Raised when:
    - Snapshot insert or delete fails
    - Entity bulk insert / bulk delete fails
    """

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        code: str = "WRITE_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"resource": resource}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
        self.resource = resource


class RestoreError(WriteError):
    """A restore stage failed.

    Restore is two separate network phases (clear, then insert) with no
    surrounding transaction. ``partially_applied`` is True once any live
    collection has been cleared, meaning the store may now be missing
    data that the snapshot still holds.

    Attributes:
        stage: "clear" or "insert"
        collection: Collection whose operation failed
        partially_applied: Whether live data was already modified
    """

    def __init__(
        self,
        message: str,
        stage: str,
        collection: str | None = None,
        partially_applied: bool = False,
    ) -> None:
        super().__init__(
            message,
            resource=collection,
            code="RESTORE_ERROR",
            details={
                "stage": stage,
                "collection": collection,
                "partially_applied": partially_applied,
            },
        )
        self.stage = stage
        self.collection = collection
        self.partially_applied = partially_applied


class ReadError(LogbookError):
    """A fetch or list against a store failed."""

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(
            message,
            code="READ_ERROR",
            details={"resource": resource},
        )
        self.resource = resource


class MalformedPayload(LogbookError):
    """A stored snapshot payload could not be interpreted."""

    def __init__(self, message: str, snapshot_id: str | None = None) -> None:
        super().__init__(
            message,
            code="MALFORMED_PAYLOAD",
            details={"snapshot_id": snapshot_id},
        )
        self.snapshot_id = snapshot_id


class ValidationError(LogbookError):
    """A tracked record failed validation.

    Raised when:
    - ``data`` is not a valid YYYY-MM-DD calendar date
    - ``status`` is not one of the entity's allowed values
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "value": value},
        )
        self.field_name = field_name
        self.value = value

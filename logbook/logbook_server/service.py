"""
Backup service: user-initiated backup actions.

This is the layer the CLI and HTTP surfaces call. Every user-initiated
action (manual backup, restore, reset, delete) ends in an ActionOutcome
that says explicitly whether it succeeded, with a message meant for the
user and a stable error code.

Error codes:
    STORE_UNAVAILABLE   snapshot table is not provisioned
    WRITE_ERROR         a write failed
    RESTORE_ERROR       restore/reset failed (check ``partially_applied``)
    READ_ERROR          a read failed
    NOT_FOUND           snapshot id does not exist
    MALFORMED_PAYLOAD   snapshot payload cannot be restored

Invariants:
    - Actions never raise LogbookError; reads (list, alerts) do
    - Every failure is logged with its code

How to change safely:
    - Keep error codes stable; UIs branch on them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .alerts import dashboard_summary, derive_critical, display_prefix, month_status, sort_by_urgency
from .errors import LogbookError, RestoreError, StoreUnavailable
from .snapshot import RestoreEngine, Snapshot, SnapshotKind, SnapshotStore

logger = logging.getLogger(__name__)

NOT_PROVISIONED_MESSAGE = (
    "Backups are not set up: the snapshot table does not exist in the database."
)
RESTORE_WARNING = (
    "Restore deletes every current invoice, order and note before inserting the "
    "snapshot. If it fails midway, data may be left partially restored."
)


@dataclass
class ActionOutcome:
    """Explicit result of a user-initiated action.

    Attributes:
        success: Whether the action succeeded
        message: User-facing message
        error_code: Stable error code on failure
        data: Action-specific result data
    """

    success: bool
    message: str
    error_code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.error_code:
            result["error_code"] = self.error_code
        if self.data:
            result["data"] = self.data
        return result


def _failure(action: str, error: LogbookError) -> ActionOutcome:
    if isinstance(error, StoreUnavailable):
        message = NOT_PROVISIONED_MESSAGE
    else:
        message = f"{action} failed: {error.message}"
    logger.error(f"{action} failed: {error}", extra={"error_code": error.code})
    data = {}
    if isinstance(error, RestoreError):
        data = {"stage": error.stage, "partially_applied": error.partially_applied}
    return ActionOutcome(success=False, message=message, error_code=error.code, data=data)


class BackupService:
    """Facade over the snapshot store and the restore engine.

    Example:
        >>> service = BackupService(snapshot_store, restore_engine)
        >>> outcome = await service.backup_now()
        >>> print(outcome.message)
    """

    def __init__(self, snapshot_store: SnapshotStore, restore_engine: RestoreEngine) -> None:
        self.snapshot_store = snapshot_store
        self.restore_engine = restore_engine

    async def backup_now(self) -> ActionOutcome:
        """Capture the live state and store a manual snapshot."""
        try:
            state = await self.restore_engine.capture_state()
            snapshot = await self.snapshot_store.create_snapshot(state, SnapshotKind.MANUAL)
        except LogbookError as e:
            return _failure("Backup", e)
        return ActionOutcome(
            success=True,
            message="Backup created.",
            data=snapshot.summary(),
        )

    async def restore(self, snapshot_id: str) -> ActionOutcome:
        """Restore a snapshot by id. See RESTORE_WARNING."""
        try:
            snapshot = await self.snapshot_store.get_snapshot(snapshot_id)
            if snapshot is None:
                return ActionOutcome(
                    success=False,
                    message=f"Snapshot {snapshot_id} not found.",
                    error_code="NOT_FOUND",
                )
            result = await self.restore_engine.restore(snapshot)
        except LogbookError as e:
            return _failure("Restore", e)
        return ActionOutcome(
            success=True,
            message="Snapshot restored.",
            data={
                "snapshot_id": result.snapshot_id,
                "inserted": result.inserted,
                "skipped": result.skipped,
                "duration_ms": result.duration_ms,
            },
        )

    async def reset(self) -> ActionOutcome:
        """Delete every live record."""
        try:
            await self.restore_engine.reset()
        except LogbookError as e:
            return _failure("Reset", e)
        return ActionOutcome(success=True, message="All records deleted.")

    async def delete(self, snapshot_id: str) -> ActionOutcome:
        try:
            await self.snapshot_store.delete_snapshot(snapshot_id)
        except LogbookError as e:
            return _failure("Delete", e)
        return ActionOutcome(success=True, message="Snapshot deleted.")

    async def list_snapshots(self) -> list[Snapshot]:
        return await self.snapshot_store.list_snapshots()

    async def alerts(self, today: date, by_urgency: bool = False, limit: int | None = None) -> dict[str, Any]:
        """Critical items and dashboard counters for ``today``.

        Raises:
            ReadError: If the live state cannot be read
        """
        state = await self.restore_engine.capture_state()
        items = derive_critical(state.invoices, state.orders, today)
        if by_urgency:
            items = sort_by_urgency(items)
        if limit is not None:
            items = display_prefix(items, limit)
        return {
            "summary": dashboard_summary(state, today),
            "items": [item.to_dict() for item in items],
        }

    async def calendar(self, year: int, month: int, today: date) -> dict[str, str]:
        """Day status for every day of a month."""
        state = await self.restore_engine.capture_state()
        return {
            day: status.value for day, status in month_status(state, year, month, today).items()
        }

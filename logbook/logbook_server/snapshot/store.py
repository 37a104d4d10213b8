"""
Snapshot store with retention for the logbook.

A snapshot is an immutable, timestamped deep copy of the three tracked
collections. The store persists snapshots through a SnapshotBackend and
keeps at most ``retention`` of them.

Persisted row format:
    {
        "id": "<uuid>",
        "created_at": "<ISO-8601>",
        "tipo": "manual" | "automatico",
        "data_snapshot": {"notas": [...], "ordens": [...], "comentarios": [...]}
    }

Invariants:
    - Snapshot payloads are deep copies; later edits to live records never
      reach a stored snapshot
    - After every successful insert, snapshots beyond the retention cap are
      deleted oldest first
    - Eviction is best effort: a failed trim is logged and never rolls back
      the snapshot just created
    - A single unreadable payload never hides the other snapshots

Concurrency:
    Two creations racing each other may both trim from a listing taken
    before the other's insert, leaving more than ``retention`` rows until
    the next trim. No locking is attempted.

How to change safely:
    - Add new row fields, don't remove ``tipo`` or ``data_snapshot``
    - Keep accepting legacy kind spellings when listing
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..errors import LogbookError, MalformedPayload, StoreUnavailable, WriteError
from ..records import LogbookState
from ..store.base import SnapshotBackend

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 7


class SnapshotKind(Enum):
    """How a snapshot was triggered. Values are the persisted ``tipo``."""

    MANUAL = "manual"
    AUTOMATIC = "automatico"

    @classmethod
    def from_wire(cls, value: Any) -> SnapshotKind:
        """Parse a persisted ``tipo`` value.

        Raises:
            ValueError: If the value is not a known kind
        """
        if value in ("automatic", "automatico"):
            return cls.AUTOMATIC
        if value == "manual":
            return cls.MANUAL
        raise ValueError(f"Unknown snapshot kind {value!r}")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp as returned by the backend.

    Naive timestamps are taken as UTC.

    Raises:
        ValueError: If the value is not an ISO-8601 string
    """
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Snapshot:
    """A stored snapshot.

    Attributes:
        id: Backend-assigned identifier
        created_at: Backend-assigned creation time
        kind: Manual or automatic
        payload: The captured collections
    """

    id: str
    created_at: datetime
    kind: SnapshotKind
    payload: LogbookState

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted row shape."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "tipo": self.kind.value,
            "data_snapshot": self.payload.to_wire(),
        }

    def summary(self) -> dict[str, Any]:
        """Row shape without the payload, with per-collection counts."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "tipo": self.kind.value,
            "counts": self.payload.counts(),
        }


class SnapshotStore:
    """Creates, lists and deletes snapshots and enforces retention.

    Attributes:
        backend: Row persistence
        retention: Maximum number of snapshots kept

    Example:
        >>> store = SnapshotStore(InMemorySnapshotBackend())
        >>> snapshot = await store.create_snapshot(state, SnapshotKind.MANUAL)
        >>> [s.id for s in await store.list_snapshots()]
    """

    def __init__(self, backend: SnapshotBackend, retention: int = DEFAULT_RETENTION) -> None:
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self.backend = backend
        self.retention = retention
        self._created_count = 0
        self._evicted_count = 0

    async def create_snapshot(self, payload: LogbookState, kind: SnapshotKind) -> Snapshot:
        """Persist a deep copy of ``payload`` and trim old snapshots.

        Args:
            payload: Collections to capture
            kind: Manual or automatic

        Returns:
            The created snapshot

        Raises:
            StoreUnavailable: If the snapshot table is not provisioned
            WriteError: If the insert fails
        """
        captured = copy.deepcopy(payload)
        row = {"tipo": kind.value, "data_snapshot": captured.to_wire()}

        try:
            stored = await self.backend.insert(row)
        except StoreUnavailable:
            logger.error("Snapshot table is not provisioned", extra={"kind": kind.value})
            raise
        except WriteError:
            raise
        except LogbookError as e:
            raise WriteError(f"Snapshot insert failed: {e.message}") from e

        try:
            snapshot = Snapshot(
                id=str(stored["id"]),
                created_at=parse_timestamp(stored.get("created_at")),
                kind=kind,
                payload=captured,
            )
        except (KeyError, ValueError) as e:
            raise WriteError(f"Snapshot insert returned an unusable row: {e}") from e

        self._created_count += 1
        logger.info(
            "Created snapshot",
            extra={
                "snapshot_id": snapshot.id,
                "kind": kind.value,
                "counts": captured.counts(),
            },
        )

        await self._enforce_retention()
        return snapshot

    async def list_snapshots(self) -> list[Snapshot]:
        """List snapshots, newest first.

        A snapshot whose payload cannot be interpreted is returned with an
        empty payload. A row without a usable id, timestamp or kind is
        skipped.

        Raises:
            StoreUnavailable: If the snapshot table is not provisioned
            ReadError: If the listing fails
        """
        rows = await self.backend.list_all()
        snapshots = []
        for row in rows:
            snapshot = self._decode_row(row)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        """Get one snapshot by id, or None if it does not exist.

        Unlike listing, a malformed payload raises instead of decoding
        as an empty state.

        Raises:
            MalformedPayload: If the stored payload cannot be interpreted
        """
        row = await self.backend.get(snapshot_id)
        if row is None:
            return None
        return self._decode_row(row, strict=True)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        """Delete a snapshot. Deleting a missing id is not an error.

        Raises:
            WriteError: If the delete itself fails
        """
        try:
            await self.backend.delete(snapshot_id)
        except (StoreUnavailable, WriteError):
            raise
        except LogbookError as e:
            raise WriteError(f"Snapshot delete failed: {e.message}") from e
        logger.info("Deleted snapshot", extra={"snapshot_id": snapshot_id})

    async def _enforce_retention(self) -> int:
        """Delete snapshots beyond the retention cap (best effort).

        Returns:
            Number of snapshots evicted
        """
        try:
            rows = await self.backend.list_all()
        except LogbookError as e:
            logger.warning(f"Retention trim skipped, listing failed: {e}")
            return 0

        evicted = 0
        for row in rows[self.retention :]:
            snapshot_id = row.get("id")
            if snapshot_id is None:
                continue
            try:
                await self.backend.delete(str(snapshot_id))
                evicted += 1
            except LogbookError as e:
                logger.warning(
                    f"Failed to evict snapshot {snapshot_id}: {e}",
                    extra={"snapshot_id": snapshot_id},
                )

        if evicted:
            self._evicted_count += evicted
            logger.info("Evicted old snapshots", extra={"evicted": evicted})
        return evicted

    def _decode_row(self, row: dict[str, Any], strict: bool = False) -> Snapshot | None:
        snapshot_id = row.get("id")
        try:
            if snapshot_id is None:
                raise ValueError("missing id")
            created_at = parse_timestamp(row.get("created_at"))
            kind = SnapshotKind.from_wire(row.get("tipo"))
        except ValueError as e:
            logger.warning(f"Skipping unreadable snapshot row {snapshot_id}: {e}")
            return None

        try:
            payload = LogbookState.from_wire(row.get("data_snapshot"), str(snapshot_id))
        except MalformedPayload as e:
            if strict:
                raise
            logger.warning(
                f"Snapshot {snapshot_id} has a malformed payload, using empty payload: {e}",
                extra={"snapshot_id": snapshot_id},
            )
            payload = LogbookState.empty()

        return Snapshot(
            id=str(snapshot_id),
            created_at=created_at,
            kind=kind,
            payload=payload,
        )

    @property
    def stats(self) -> dict[str, Any]:
        """Get snapshot store statistics."""
        return {
            "retention": self.retention,
            "created_count": self._created_count,
            "evicted_count": self._evicted_count,
        }

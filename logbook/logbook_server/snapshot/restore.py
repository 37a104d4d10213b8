"""
Restore engine for the logbook.

Restore replaces every live tracked record with the contents of a
snapshot:
1. Clear all three live collections (bulk delete-all)
2. Strip ``id`` from every snapshot record so the store assigns fresh ids
3. Bulk-insert each collection, skipping empty ones entirely
4. Report success only after every insert (or skip) completed

Non-atomic risk window:
    Clearing and inserting are separate network operations with no
    surrounding transaction. If clearing succeeds and an insert fails, the
    live store is left partially empty. The engine raises RestoreError
    naming the failing stage and collection, with ``partially_applied``
    set; it never rolls back or retries. Callers must warn users before
    invoking a restore.

Invariants:
    - Steps run strictly in sequence
    - An empty collection never produces an insert call
    - Snapshot records keep their content, only ids change

How to change safely:
    - If the backend gains transactions, wrap clear + insert in one
    - Keep the clear order stable; tests assert on it
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from ..errors import LogbookError, ReadError, RestoreError, ValidationError
from ..records import Collection, LogbookState
from ..store.base import EntityStore
from .store import Snapshot

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a completed restore.

    Attributes:
        snapshot_id: Snapshot that was restored
        inserted: Rows inserted per collection
        skipped: Collections skipped because they were empty
        duration_ms: Total restore duration
    """

    snapshot_id: str
    inserted: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    duration_ms: int = 0


class RestoreEngine:
    """Restores snapshots into the entity store.

    Also owns the two other whole-store operations the backup flow needs:
    reading the current state (for snapshots) and clearing it (reset).

    Example:
        >>> engine = RestoreEngine(entity_store)
        >>> state = await engine.capture_state()
        >>> result = await engine.restore(snapshot)
    """

    def __init__(self, entity_store: EntityStore) -> None:
        self.entity_store = entity_store

    async def capture_state(self) -> LogbookState:
        """Read all three live collections.

        Raises:
            ReadError: If any fetch fails or a row is invalid
            StoreUnavailable: If a collection table does not exist
        """
        invoices, orders, notes = await asyncio.gather(
            self.entity_store.fetch_all(Collection.INVOICES),
            self.entity_store.fetch_all(Collection.ORDERS),
            self.entity_store.fetch_all(Collection.NOTES),
        )
        try:
            return LogbookState.from_rows(invoices, orders, notes)
        except ValidationError as e:
            raise ReadError(f"Live store holds an invalid record: {e.message}") from e

    async def restore(self, snapshot: Snapshot) -> RestoreResult:
        """Replace the live collections with the snapshot's payload.

        Args:
            snapshot: Snapshot to restore

        Returns:
            RestoreResult once every collection has been inserted or skipped

        Raises:
            RestoreError: If clearing or inserting fails; see
                ``partially_applied`` for whether live data was modified
        """
        start_time = time.time()
        logger.info("Starting restore", extra={"snapshot_id": snapshot.id})

        await self._clear_all()

        result = RestoreResult(snapshot_id=snapshot.id)
        stripped = snapshot.payload.to_wire(include_ids=False)
        for collection in Collection:
            rows = stripped[collection.value]
            if not rows:
                result.skipped.append(collection.value)
                continue
            try:
                await self.entity_store.bulk_insert(collection, rows)
            except LogbookError as e:
                logger.error(
                    f"Restore insert failed for {collection.value}: {e}",
                    extra={"snapshot_id": snapshot.id, "collection": collection.value},
                )
                raise RestoreError(
                    f"Restore failed while inserting '{collection.value}'; "
                    f"live data is partially restored: {e.message}",
                    stage="insert",
                    collection=collection.value,
                    partially_applied=True,
                ) from e
            result.inserted[collection.value] = len(rows)

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Restore completed",
            extra={
                "snapshot_id": snapshot.id,
                "inserted": result.inserted,
                "skipped": result.skipped,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    async def reset(self) -> None:
        """Delete every live tracked record.

        Raises:
            RestoreError: With stage "clear" if any delete fails
        """
        logger.warning("Resetting all live collections")
        await self._clear_all()

    async def _clear_all(self) -> None:
        cleared_any = False
        for collection in Collection:
            try:
                await self.entity_store.bulk_delete_all(collection)
            except LogbookError as e:
                logger.error(
                    f"Clear failed for {collection.value}: {e}",
                    extra={"collection": collection.value},
                )
                raise RestoreError(
                    f"Failed to clear '{collection.value}': {e.message}",
                    stage="clear",
                    collection=collection.value,
                    partially_applied=cleared_any,
                ) from e
            cleared_any = True

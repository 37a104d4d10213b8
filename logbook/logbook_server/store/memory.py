"""
In-memory store implementations for testing.

This module provides in-memory versions of both store protocols for:
- Unit tests
- Integration tests
- Local development without a hosted backend

Invariants:
    - All data is lost on process exit
    - Same ordering guarantees as the hosted backend
    - Rows are deep-copied on the way in and out, so callers never share
      mutable state with the store

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interfaces compatible with EntityStore / SnapshotBackend
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from ..errors import LogbookError, ReadError, StoreUnavailable, WriteError
from ..records import Collection

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _FailureInjector:
    """Queue of exceptions raised by the next matching operations."""

    def __init__(self) -> None:
        self._pending: list[tuple[str, Any, LogbookError]] = []

    def add(self, operation: str, error: LogbookError, key: Any = None, times: int = 1) -> None:
        for _ in range(times):
            self._pending.append((operation, key, error))

    def check(self, operation: str, key: Any = None) -> None:
        for index, (op, op_key, error) in enumerate(self._pending):
            if op == operation and (op_key is None or op_key == key):
                del self._pending[index]
                raise error

    def clear(self) -> None:
        self._pending.clear()


class InMemoryEntityStore:
    """In-memory implementation of EntityStore.

    Attributes:
        calls: Log of ``(operation, collection, row_count)`` tuples, in
            call order, for asserting which store calls were issued

    Example:
        >>> store = InMemoryEntityStore()
        >>> await store.bulk_insert(Collection.INVOICES, [{"data": "2026-01-02", ...}])
        >>> rows = await store.fetch_all(Collection.INVOICES)
    """

    def __init__(self) -> None:
        self._rows: dict[Collection, list[dict[str, Any]]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._failures = _FailureInjector()
        self.calls: list[tuple[str, Collection, int]] = []

    async def fetch_all(self, collection: Collection) -> list[dict[str, Any]]:
        self.calls.append(("fetch_all", collection, 0))
        self._failures.check("fetch_all", collection)
        async with self._lock:
            rows = copy.deepcopy(self._rows[collection])
        return sorted(rows, key=lambda row: row.get("data") or "", reverse=True)

    async def bulk_delete_all(self, collection: Collection) -> None:
        self.calls.append(("bulk_delete_all", collection, 0))
        self._failures.check("bulk_delete_all", collection)
        async with self._lock:
            self._rows[collection].clear()

    async def bulk_insert(self, collection: Collection, rows: list[dict[str, Any]]) -> None:
        self.calls.append(("bulk_insert", collection, len(rows)))
        self._failures.check("bulk_insert", collection)
        async with self._lock:
            for row in rows:
                stored = copy.deepcopy(row)
                stored.setdefault("id", str(uuid.uuid4()))
                self._rows[collection].append(stored)

    async def upsert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("upsert", collection, 1))
        self._failures.check("upsert", collection)
        stored = copy.deepcopy(row)
        async with self._lock:
            rows = self._rows[collection]
            row_id = stored.get("id")
            for index, existing in enumerate(rows):
                if row_id is not None and existing.get("id") == row_id:
                    merged = {**existing, **stored}
                    rows[index] = merged
                    return copy.deepcopy(merged)
            stored.setdefault("id", str(uuid.uuid4()))
            rows.append(stored)
        return copy.deepcopy(stored)

    async def delete_by_id(self, collection: Collection, row_id: str) -> None:
        self.calls.append(("delete_by_id", collection, 1))
        self._failures.check("delete_by_id", collection)
        async with self._lock:
            self._rows[collection] = [
                row for row in self._rows[collection] if row.get("id") != row_id
            ]

    # Testing helpers

    def inject_failure(
        self,
        operation: str,
        collection: Collection | None = None,
        error: LogbookError | None = None,
        times: int = 1,
    ) -> None:
        """Make the next matching operation raise (testing helper).

        Args:
            operation: Method name, e.g. "bulk_insert"
            collection: Only fail for this collection (any if None)
            error: Exception to raise (defaults to ReadError for fetches,
                WriteError otherwise)
            times: Number of matching calls to fail
        """
        if error is None:
            resource = collection.value if collection else None
            if operation == "fetch_all":
                error = ReadError(f"Injected {operation} failure", resource)
            else:
                error = WriteError(f"Injected {operation} failure", resource)
        self._failures.add(operation, error, key=collection, times=times)

    def calls_for(self, operation: str) -> list[tuple[str, Collection, int]]:
        """Logged calls of one operation (testing helper)."""
        return [call for call in self.calls if call[0] == operation]

    def get_row_count(self, collection: Collection) -> int:
        """Row count of a collection (testing helper)."""
        return len(self._rows[collection])


class InMemorySnapshotBackend:
    """In-memory implementation of SnapshotBackend.

    ``created_at`` comes from an injectable clock so tests can create
    snapshots with controlled (or identical) timestamps. Ties are broken
    by insertion sequence.

    Attributes:
        provisioned: When False, every operation raises StoreUnavailable,
            simulating a deployment where the snapshot table is missing
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        provisioned: bool = True,
        table: str = "backups",
    ) -> None:
        self._clock = clock or _utc_now
        self.provisioned = provisioned
        self.table = table
        self._rows: list[tuple[int, dict[str, Any]]] = []
        self._next_seq = 0
        self._lock = asyncio.Lock()
        self._failures = _FailureInjector()

    def _require_table(self) -> None:
        if not self.provisioned:
            raise StoreUnavailable(f"Table '{self.table}' does not exist", self.table)

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        self._require_table()
        self._failures.check("insert")
        stored = copy.deepcopy(row)
        stored["id"] = str(uuid.uuid4())
        stored["created_at"] = self._clock().isoformat()
        async with self._lock:
            self._rows.append((self._next_seq, stored))
            self._next_seq += 1
        logger.debug("Snapshot row inserted", extra={"snapshot_id": stored["id"]})
        return copy.deepcopy(stored)

    async def list_all(self) -> list[dict[str, Any]]:
        self._require_table()
        self._failures.check("list_all")
        async with self._lock:
            ordered = sorted(
                self._rows,
                key=lambda item: (str(item[1].get("created_at") or ""), item[0]),
                reverse=True,
            )
            return [copy.deepcopy(row) for _, row in ordered]

    async def get(self, snapshot_id: str) -> dict[str, Any] | None:
        self._require_table()
        self._failures.check("get")
        async with self._lock:
            for _, row in self._rows:
                if row.get("id") == snapshot_id:
                    return copy.deepcopy(row)
        return None

    async def delete(self, snapshot_id: str) -> None:
        self._require_table()
        self._failures.check("delete", snapshot_id)
        async with self._lock:
            self._rows = [item for item in self._rows if item[1].get("id") != snapshot_id]

    # Testing helpers

    def inject_failure(
        self,
        operation: str,
        error: LogbookError | None = None,
        snapshot_id: str | None = None,
        times: int = 1,
    ) -> None:
        """Make the next matching operation raise (testing helper)."""
        if error is None:
            if operation in ("list_all", "get"):
                error = ReadError(f"Injected {operation} failure", self.table)
            else:
                error = WriteError(f"Injected {operation} failure", self.table)
        self._failures.add(operation, error, key=snapshot_id, times=times)

    def put_raw(self, row: dict[str, Any]) -> None:
        """Store a row exactly as given, bypassing id/timestamp assignment
        (testing helper for corrupt or legacy rows)."""
        self._rows.append((self._next_seq, copy.deepcopy(row)))
        self._next_seq += 1

    def get_row_count(self) -> int:
        """Number of stored snapshot rows (testing helper)."""
        return len(self._rows)

"""
Store protocols consumed by the backup core.

Two stores sit underneath the snapshot mechanism:
- EntityStore: the live invoices/orders/notes collections
- SnapshotBackend: row persistence for snapshot records

Both are external collaborators. The core only relies on the contracts
below; implementations live in ``memory`` (tests, local development) and
``supabase`` (hosted PostgREST backend).

Invariants:
    - Rows are plain JSON-compatible dictionaries
    - ``fetch_all`` returns rows ordered by ``data`` descending
    - ``bulk_insert`` with an empty list is a no-op
    - Snapshot rows get ``id`` and ``created_at`` from the backend
    - ``SnapshotBackend.list_all`` returns rows newest first, ties broken by
      insertion order (most recent first)

Error contract:
    - StoreUnavailable when the underlying table does not exist
    - ReadError for failed fetch/list/get
    - WriteError for failed insert/upsert/delete

How to change safely:
    - Protocol changes require updating every implementation
    - Add new methods with a default path in the in-memory store first
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable

from ..records import Collection


@runtime_checkable
class EntityStore(Protocol):
    """Protocol for the live tracked-record store."""

    @abstractmethod
    async def fetch_all(self, collection: Collection) -> list[dict[str, Any]]:
        """Fetch every row of a collection.

        Raises:
            ReadError: If the fetch fails
        """
        ...

    @abstractmethod
    async def bulk_delete_all(self, collection: Collection) -> None:
        """Delete every row of a collection.

        Raises:
            WriteError: If the delete fails
        """
        ...

    @abstractmethod
    async def bulk_insert(self, collection: Collection, rows: list[dict[str, Any]]) -> None:
        """Insert rows; the store assigns ids to rows without one.

        Raises:
            WriteError: If the insert fails
        """
        ...

    @abstractmethod
    async def upsert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        """Insert or update a row by id and return the stored row."""
        ...

    @abstractmethod
    async def delete_by_id(self, collection: Collection, row_id: str) -> None:
        """Delete one row by id. Missing ids are not an error."""
        ...


@runtime_checkable
class SnapshotBackend(Protocol):
    """Protocol for snapshot row persistence.

    Rows follow the persisted shape::

        {id, created_at, tipo, data_snapshot}
    """

    @abstractmethod
    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it with ``id`` and ``created_at`` set.

        Raises:
            StoreUnavailable: If the snapshot table does not exist
            WriteError: For any other failure
        """
        ...

    @abstractmethod
    async def list_all(self) -> list[dict[str, Any]]:
        """List all rows, newest first.

        Raises:
            StoreUnavailable: If the snapshot table does not exist
            ReadError: For any other failure
        """
        ...

    @abstractmethod
    async def get(self, snapshot_id: str) -> dict[str, Any] | None:
        """Get one row by id, or None."""
        ...

    @abstractmethod
    async def delete(self, snapshot_id: str) -> None:
        """Delete one row by id. Missing ids are not an error.

        Raises:
            WriteError: If the delete itself fails
        """
        ...

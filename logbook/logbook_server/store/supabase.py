"""
Supabase (PostgREST) store implementations.

Both store protocols are backed by the hosted PostgREST API:
- SupabaseEntityStore: the notas_fiscais / ordens_producao / comentarios tables
- SupabaseSnapshotBackend: the backups table

Request mapping:
    fetch_all        GET    /rest/v1/<table>?select=*&order=data.desc
    bulk_delete_all  DELETE /rest/v1/<table>?id=not.is.null
    bulk_insert      POST   /rest/v1/<table>            (skipped when empty)
    upsert           POST   /rest/v1/<table>            Prefer: resolution=merge-duplicates
    delete_by_id     DELETE /rest/v1/<table>?id=eq.<id>

Invariants:
    - One aiohttp session per client, opened by connect()
    - A missing table (HTTP 404, 42P01, PGRST205) is StoreUnavailable
    - Transport errors map to ReadError for reads, WriteError for writes
    - The API key is sent as headers only and never logged

How to change safely:
    - Keep PostgREST filters URL-encoded through aiohttp params
    - Test against a local PostgREST before changing Prefer headers
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from ..config import StoreConfig
from ..errors import LogbookError, ReadError, StoreUnavailable, WriteError
from ..records import Collection

logger = logging.getLogger(__name__)

MISSING_TABLE_CODES = frozenset({"42P01", "PGRST205"})


class PostgrestClient:
    """Minimal async PostgREST client.

    Example:
        >>> client = PostgrestClient(StoreConfig(url=..., api_key=...))
        >>> await client.connect()
        >>> rows = await client.request("GET", "backups", params={"select": "*"})
        >>> await client.close()
    """

    def __init__(
        self,
        config: StoreConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if not config.url:
            raise ValueError("StoreConfig.url is required for the Supabase backend")
        self.config = config
        self.base_url = f"{config.url.rstrip('/')}/rest/v1"
        self._session = session
        self._owns_session = session is None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is not None:
            return
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["apikey"] = self.config.api_key
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        self._session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
        )
        self._owns_session = True
        logger.info("PostgREST client connected", extra={"base_url": self.base_url})

    async def close(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> PostgrestClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Issue one request against a table.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            StoreUnavailable: If the table does not exist
            ReadError: If a GET fails
            WriteError: If any other method fails
        """
        if self._session is None:
            await self.connect()

        is_read = method.upper() == "GET"
        headers = {"Prefer": prefer} if prefer else None
        url = f"{self.base_url}/{table}"

        try:
            async with self._session.request(
                method, url, params=params, json=json_body, headers=headers
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise self._error_for(response.status, body, table, is_read)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._failure(f"{method} {table} failed: {e}", table, is_read) from e

        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ReadError(f"{method} {table} returned invalid JSON: {e}", table) from e

    def _error_for(self, status: int, body: str, table: str, is_read: bool) -> LogbookError:
        code = None
        message = body
        try:
            decoded = json.loads(body) if body else {}
            if isinstance(decoded, dict):
                code = decoded.get("code")
                message = decoded.get("message") or body
        except json.JSONDecodeError:
            pass

        if status == 404 or code in MISSING_TABLE_CODES:
            return StoreUnavailable(f"Table '{table}' does not exist: {message}", table)
        return self._failure(f"HTTP {status} on '{table}': {message}", table, is_read)

    @staticmethod
    def _failure(message: str, table: str, is_read: bool) -> LogbookError:
        if is_read:
            return ReadError(message, table)
        return WriteError(message, table)


class SupabaseEntityStore:
    """EntityStore backed by PostgREST tables."""

    def __init__(self, client: PostgrestClient, config: StoreConfig | None = None) -> None:
        self.client = client
        config = config or client.config
        self._tables = {
            Collection.INVOICES: config.invoices_table,
            Collection.ORDERS: config.orders_table,
            Collection.NOTES: config.notes_table,
        }

    def table_for(self, collection: Collection) -> str:
        return self._tables[collection]

    async def fetch_all(self, collection: Collection) -> list[dict[str, Any]]:
        rows = await self.client.request(
            "GET",
            self.table_for(collection),
            params={"select": "*", "order": "data.desc"},
        )
        return rows or []

    async def bulk_delete_all(self, collection: Collection) -> None:
        # PostgREST refuses unfiltered deletes
        await self.client.request(
            "DELETE",
            self.table_for(collection),
            params={"id": "not.is.null"},
        )

    async def bulk_insert(self, collection: Collection, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        await self.client.request(
            "POST",
            self.table_for(collection),
            json_body=rows,
            prefer="return=minimal",
        )

    async def upsert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        stored = await self.client.request(
            "POST",
            self.table_for(collection),
            json_body=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        if isinstance(stored, list):
            if not stored:
                raise WriteError("Upsert returned no row", self.table_for(collection))
            return stored[0]
        return stored

    async def delete_by_id(self, collection: Collection, row_id: str) -> None:
        await self.client.request(
            "DELETE",
            self.table_for(collection),
            params={"id": f"eq.{row_id}"},
        )


class SupabaseSnapshotBackend:
    """SnapshotBackend backed by the PostgREST ``backups`` table.

    The table is expected to default ``id`` (uuid) and ``created_at``
    (timestamptz, now()) server-side.
    """

    def __init__(self, client: PostgrestClient, table: str = "backups") -> None:
        self.client = client
        self.table = table

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        stored = await self.client.request(
            "POST",
            self.table,
            json_body=row,
            prefer="return=representation",
        )
        if isinstance(stored, list):
            stored = stored[0] if stored else None
        if not isinstance(stored, dict) or "id" not in stored:
            raise WriteError("Snapshot insert returned no row", self.table)
        return stored

    async def list_all(self) -> list[dict[str, Any]]:
        rows = await self.client.request(
            "GET",
            self.table,
            params={"select": "*", "order": "created_at.desc,id.desc"},
        )
        return rows or []

    async def get(self, snapshot_id: str) -> dict[str, Any] | None:
        rows = await self.client.request(
            "GET",
            self.table,
            params={"select": "*", "id": f"eq.{snapshot_id}", "limit": "1"},
        )
        return rows[0] if rows else None

    async def delete(self, snapshot_id: str) -> None:
        await self.client.request(
            "DELETE",
            self.table,
            params={"id": f"eq.{snapshot_id}"},
        )

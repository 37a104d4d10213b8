"""
Integration tests for the Supabase/PostgREST stores.

Runs the real aiohttp client against a small fake PostgREST server.

Tests cover:
- Auth headers
- Entity fetch/insert/delete-all filters
- Snapshot insert, ordering, get, delete
- Missing table and server error mapping
- Full backup and restore through the REST stores
"""

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from aiohttp import web
from aiohttp import test_utils

from logbook.logbook_server.config import StoreConfig
from logbook.logbook_server.errors import ReadError, StoreUnavailable, WriteError
from logbook.logbook_server.records import Collection
from logbook.logbook_server.snapshot import RestoreEngine, SnapshotKind, SnapshotStore
from logbook.logbook_server.store.supabase import (
    PostgrestClient,
    SupabaseEntityStore,
    SupabaseSnapshotBackend,
)


class FakePostgrest:
    """In-process PostgREST stand-in covering the filters the stores use."""

    def __init__(self, tables=("notas_fiscais", "ordens_producao", "comentarios", "backups")):
        self.tables = {name: [] for name in tables}
        self.requests = []
        self.failing = set()
        self._clock = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def app(self):
        app = web.Application()
        app.router.add_route("*", "/rest/v1/{table}", self.handle)
        return app

    def _filter(self, rows, query):
        id_filter = query.get("id")
        if id_filter is None:
            return rows
        if id_filter == "not.is.null":
            return [row for row in rows if row.get("id") is not None]
        if id_filter.startswith("eq."):
            return [row for row in rows if str(row.get("id")) == id_filter[3:]]
        raise ValueError(id_filter)

    async def handle(self, request):
        table = request.match_info["table"]
        self.requests.append(
            {
                "method": request.method,
                "table": table,
                "query": dict(request.query),
                "apikey": request.headers.get("apikey"),
                "authorization": request.headers.get("Authorization"),
                "prefer": request.headers.get("Prefer"),
            }
        )

        if table not in self.tables:
            return web.json_response(
                {"code": "PGRST205", "message": f"Could not find the table 'public.{table}'"},
                status=404,
            )
        if table in self.failing:
            return web.json_response({"code": "XX000", "message": "internal error"}, status=500)

        rows = self.tables[table]

        if request.method == "GET":
            selected = self._filter(rows, request.query)
            if request.query.get("order", "").startswith("created_at.desc"):
                selected = sorted(selected, key=lambda r: (r["created_at"], r["id"]), reverse=True)
            if "limit" in request.query:
                selected = selected[: int(request.query["limit"])]
            return web.json_response(selected)

        if request.method == "POST":
            body = await request.json()
            new_rows = body if isinstance(body, list) else [body]
            created = []
            for row in new_rows:
                stored = dict(row)
                stored.setdefault("id", str(uuid.uuid4()))
                if table == "backups":
                    self._clock += timedelta(minutes=1)
                    stored["created_at"] = self._clock.isoformat()
                rows.append(stored)
                created.append(stored)
            if request.headers.get("Prefer", "").endswith("return=minimal"):
                return web.Response(status=201)
            return web.json_response(created, status=201)

        if request.method == "DELETE":
            if "id" not in request.query:
                return web.json_response(
                    {"code": "21000", "message": "DELETE requires a WHERE clause"}, status=400
                )
            doomed = {id(row) for row in self._filter(rows, request.query)}
            self.tables[table] = [row for row in rows if id(row) not in doomed]
            return web.Response(status=204)

        return web.Response(status=405)


class TestSupabaseStores:
    """Tests for SupabaseEntityStore and SupabaseSnapshotBackend."""

    @pytest.fixture
    def fake(self):
        return FakePostgrest()

    async def open_client(self, fake):
        server = test_utils.TestServer(fake.app())
        await server.start_server()
        client = PostgrestClient(
            StoreConfig(url=str(server.make_url("/")), api_key="anon-key", timeout_seconds=5)
        )
        await client.connect()
        return server, client

    @pytest.mark.asyncio
    async def test_fetch_sends_auth_and_order(self, fake):
        server, client = await self.open_client(fake)
        try:
            fake.tables["notas_fiscais"].append(
                {"id": "1", "data": "2026-03-01", "numero": "NF-1", "status": "Pendente"}
            )
            store = SupabaseEntityStore(client)

            rows = await store.fetch_all(Collection.INVOICES)

            assert rows[0]["numero"] == "NF-1"
            request = fake.requests[-1]
            assert request["apikey"] == "anon-key"
            assert request["authorization"] == "Bearer anon-key"
            assert request["query"]["order"] == "data.desc"
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_bulk_delete_all_uses_not_null_filter(self, fake):
        server, client = await self.open_client(fake)
        try:
            fake.tables["comentarios"].extend(
                [{"id": "a", "data": "2026-03-01"}, {"id": "b", "data": "2026-03-02"}]
            )
            store = SupabaseEntityStore(client)

            await store.bulk_delete_all(Collection.NOTES)

            assert fake.tables["comentarios"] == []
            assert fake.requests[-1]["query"] == {"id": "not.is.null"}
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_bulk_insert_empty_is_noop(self, fake):
        server, client = await self.open_client(fake)
        try:
            await SupabaseEntityStore(client).bulk_insert(Collection.ORDERS, [])
            assert fake.requests == []
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_upsert_and_delete_by_id(self, fake):
        server, client = await self.open_client(fake)
        try:
            store = SupabaseEntityStore(client)

            stored = await store.upsert(Collection.NOTES, {"data": "2026-03-01", "texto": "x"})
            await store.delete_by_id(Collection.NOTES, stored["id"])

            assert fake.tables["comentarios"] == []
            assert "merge-duplicates" in fake.requests[0]["prefer"]
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_snapshot_backend_round_trip(self, fake):
        server, client = await self.open_client(fake)
        try:
            backend = SupabaseSnapshotBackend(client)

            first = await backend.insert({"tipo": "manual", "data_snapshot": {"notas": []}})
            second = await backend.insert({"tipo": "automatico", "data_snapshot": {"notas": []}})

            listed = await backend.list_all()
            assert [row["id"] for row in listed] == [second["id"], first["id"]]
            assert (await backend.get(first["id"]))["tipo"] == "manual"

            await backend.delete(first["id"])
            assert await backend.get(first["id"]) is None
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_missing_table_is_store_unavailable(self):
        fake = FakePostgrest(tables=("notas_fiscais",))
        server, client = await self.open_client(fake)
        try:
            with pytest.raises(StoreUnavailable) as exc_info:
                await SupabaseSnapshotBackend(client).list_all()
            assert exc_info.value.resource == "backups"
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_server_errors_map_by_method(self, fake):
        server, client = await self.open_client(fake)
        try:
            fake.failing.add("backups")
            backend = SupabaseSnapshotBackend(client)

            with pytest.raises(ReadError):
                await backend.list_all()
            with pytest.raises(WriteError):
                await backend.insert({"tipo": "manual", "data_snapshot": {}})
        finally:
            await client.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_unreachable_server_is_read_error(self):
        client = PostgrestClient(StoreConfig(url="http://127.0.0.1:9", api_key="k", timeout_seconds=2))
        try:
            with pytest.raises(ReadError):
                await SupabaseSnapshotBackend(client).list_all()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_backup_and_restore_through_rest(self, fake):
        server, client = await self.open_client(fake)
        try:
            fake.tables["notas_fiscais"].append(
                {"id": "1", "data": "2026-03-01", "numero": "NF-1", "status": "Pendente", "tipo": "Entrada"}
            )
            fake.tables["comentarios"].append({"id": "2", "data": "2026-03-02", "texto": "ok"})
            entity_store = SupabaseEntityStore(client)
            snapshot_store = SnapshotStore(SupabaseSnapshotBackend(client))
            engine = RestoreEngine(entity_store)

            snapshot = await snapshot_store.create_snapshot(
                await engine.capture_state(), SnapshotKind.MANUAL
            )
            await engine.reset()
            assert fake.tables["notas_fiscais"] == []

            stored = await snapshot_store.get_snapshot(snapshot.id)
            result = await engine.restore(stored)

            assert result.inserted == {"notas": 1, "comentarios": 1}
            assert fake.tables["notas_fiscais"][0]["numero"] == "NF-1"
            assert fake.tables["notas_fiscais"][0]["id"] != "1"
            inserts = [r for r in fake.requests if r["method"] == "POST" and r["table"] != "backups"]
            assert all(r["prefer"] == "return=minimal" for r in inserts)
            assert json.dumps(fake.tables["backups"][0]["data_snapshot"])
        finally:
            await client.close()
            await server.close()

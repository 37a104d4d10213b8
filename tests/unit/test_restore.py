"""
Unit tests for RestoreEngine.

Tests cover:
- State capture
- Restore round trip (content equal, ids reassigned)
- Empty collections never produce insert calls
- Failure during insert and clear, with partial-application flag
- Reset
"""

from datetime import datetime, timezone

import pytest

from logbook.logbook_server.errors import ReadError, RestoreError
from logbook.logbook_server.records import (
    Collection,
    Invoice,
    InvoiceStatus,
    LogbookState,
    Note,
    OrderStatus,
    ProductionOrder,
)
from logbook.logbook_server.snapshot.restore import RestoreEngine
from logbook.logbook_server.snapshot.store import Snapshot, SnapshotKind
from logbook.logbook_server.store.memory import InMemoryEntityStore


def make_snapshot(state, snapshot_id="snap-1"):
    return Snapshot(
        id=snapshot_id,
        created_at=datetime(2026, 3, 10, 17, 45, tzinfo=timezone.utc),
        kind=SnapshotKind.MANUAL,
        payload=state,
    )


def content(state):
    """Collections without ids, for comparing states across restores."""
    return {
        key: sorted(rows, key=lambda row: sorted(row.items()))
        for key, rows in state.to_wire(include_ids=False).items()
    }


FULL_STATE = LogbookState(
    invoices=(
        Invoice(id="i1", data="2026-03-09", numero="NF-1", fornecedor="Acme"),
        Invoice(id="i2", data="2026-03-08", numero="NF-2", status=InvoiceStatus.CLASSIFIED),
    ),
    orders=(ProductionOrder(id="o1", data="2026-03-07", numero="OP-1", status=OrderStatus.COMPLETED),),
    notes=(Note(id="n1", data="2026-03-06", texto="Inventário"),),
)


class TestRestoreEngine:
    """Tests for RestoreEngine."""

    @pytest.fixture
    def entity_store(self):
        return InMemoryEntityStore()

    @pytest.fixture
    def engine(self, entity_store):
        return RestoreEngine(entity_store)

    @pytest.mark.asyncio
    async def test_capture_empty_state(self, engine):
        state = await engine.capture_state()
        assert state.is_empty()

    @pytest.mark.asyncio
    async def test_capture_invalid_row_is_read_error(self, engine, entity_store):
        await entity_store.bulk_insert(Collection.INVOICES, [{"data": "31/12/2025", "status": "Pendente"}])

        with pytest.raises(ReadError):
            await engine.capture_state()

    @pytest.mark.asyncio
    async def test_restore_round_trip(self, engine, entity_store):
        result = await engine.restore(make_snapshot(FULL_STATE))
        restored = await engine.capture_state()

        assert content(restored) == content(FULL_STATE)
        assert result.inserted == {"notas": 2, "ordens": 1, "comentarios": 1}
        assert result.skipped == []

    @pytest.mark.asyncio
    async def test_restore_assigns_fresh_ids(self, engine, entity_store):
        await engine.restore(make_snapshot(FULL_STATE))
        restored = await engine.capture_state()

        original_ids = {"i1", "i2", "o1", "n1"}
        restored_ids = {r.id for r in restored.invoices + restored.orders + restored.notes}
        assert restored_ids.isdisjoint(original_ids)
        assert None not in restored_ids

    @pytest.mark.asyncio
    async def test_restore_replaces_existing_rows(self, engine, entity_store):
        await entity_store.bulk_insert(
            Collection.INVOICES, [{"data": "2026-01-01", "numero": "OLD", "status": "Pendente"}]
        )

        await engine.restore(make_snapshot(FULL_STATE))

        restored = await engine.capture_state()
        assert "OLD" not in {inv.numero for inv in restored.invoices}
        assert entity_store.get_row_count(Collection.INVOICES) == 2

    @pytest.mark.asyncio
    async def test_empty_collections_are_skipped(self, engine, entity_store):
        state = LogbookState(invoices=FULL_STATE.invoices)

        result = await engine.restore(make_snapshot(state))

        inserts = entity_store.calls_for("bulk_insert")
        assert [call[1] for call in inserts] == [Collection.INVOICES]
        assert result.skipped == ["ordens", "comentarios"]

    @pytest.mark.asyncio
    async def test_restore_empty_snapshot_clears_everything(self, engine, entity_store):
        await engine.restore(make_snapshot(FULL_STATE))

        await engine.restore(make_snapshot(LogbookState.empty(), "snap-empty"))

        assert (await engine.capture_state()).is_empty()
        assert len(entity_store.calls_for("bulk_insert")) == 3

    @pytest.mark.asyncio
    async def test_clears_before_inserting(self, engine, entity_store):
        await engine.restore(make_snapshot(FULL_STATE))

        ops = [call[0] for call in entity_store.calls]
        assert ops[:3] == ["bulk_delete_all"] * 3
        assert set(ops[3:]) == {"bulk_insert"}

    @pytest.mark.asyncio
    async def test_insert_failure_reports_partial_restore(self, engine, entity_store):
        entity_store.inject_failure("bulk_insert", Collection.ORDERS)

        with pytest.raises(RestoreError) as exc_info:
            await engine.restore(make_snapshot(FULL_STATE))

        error = exc_info.value
        assert error.stage == "insert"
        assert error.collection == "ordens"
        assert error.partially_applied is True
        # Invoices made it in, orders and notes did not
        assert entity_store.get_row_count(Collection.INVOICES) == 2
        assert entity_store.get_row_count(Collection.ORDERS) == 0
        assert entity_store.get_row_count(Collection.NOTES) == 0

    @pytest.mark.asyncio
    async def test_first_clear_failure_leaves_data_untouched(self, engine, entity_store):
        await engine.restore(make_snapshot(FULL_STATE))
        entity_store.inject_failure("bulk_delete_all", Collection.INVOICES)

        with pytest.raises(RestoreError) as exc_info:
            await engine.restore(make_snapshot(LogbookState.empty()))

        assert exc_info.value.stage == "clear"
        assert exc_info.value.partially_applied is False
        assert entity_store.get_row_count(Collection.INVOICES) == 2

    @pytest.mark.asyncio
    async def test_later_clear_failure_is_partial(self, engine, entity_store):
        entity_store.inject_failure("bulk_delete_all", Collection.NOTES)

        with pytest.raises(RestoreError) as exc_info:
            await engine.restore(make_snapshot(FULL_STATE))

        assert exc_info.value.collection == "comentarios"
        assert exc_info.value.partially_applied is True
        assert entity_store.calls_for("bulk_insert") == []

    @pytest.mark.asyncio
    async def test_reset(self, engine, entity_store):
        await engine.restore(make_snapshot(FULL_STATE))

        await engine.reset()

        assert (await engine.capture_state()).is_empty()

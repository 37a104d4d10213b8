"""
Unit tests for critical-item aggregation and calendar day status.

Tests cover:
- Critical age threshold boundaries
- Terminal statuses never critical
- Source ordering, urgency sort and display prefix
- Severity labels
- Day status precedence
- Month status and dashboard counters
"""

from datetime import date

import pytest

from logbook.logbook_server.alerts import (
    DayStatus,
    age_days,
    alert_severity,
    dashboard_summary,
    day_status,
    derive_critical,
    display_prefix,
    month_status,
    sort_by_urgency,
)
from logbook.logbook_server.records import (
    Collection,
    Invoice,
    InvoiceStatus,
    LogbookState,
    Note,
    OrderStatus,
    ProductionOrder,
)

TODAY = date(2026, 3, 10)


def invoice(day, status=InvoiceStatus.PENDING, numero="NF", id=None):
    return Invoice(id=id, data=day, numero=numero, status=status)


def order(day, status=OrderStatus.PICKING, numero="OP", id=None):
    return ProductionOrder(id=id, data=day, numero=numero, status=status)


class TestDeriveCritical:
    """Tests for derive_critical()."""

    def test_age_days(self):
        assert age_days(date(2026, 3, 6), TODAY) == 4
        assert age_days(date(2026, 3, 11), TODAY) == -1

    def test_pending_invoice_four_days_old(self):
        items = derive_critical([invoice("2026-03-06", numero="NF-9", id="i9")], [], TODAY)

        assert len(items) == 1
        item = items[0]
        assert item.source_id == "i9"
        assert item.source_kind is Collection.INVOICES
        assert item.number == "NF-9"
        assert item.status == "Pendente"
        assert item.date == "2026-03-06"
        assert item.age_days == 4

    @pytest.mark.parametrize(
        "day,expected",
        [
            ("2026-03-10", 0),
            ("2026-03-09", 0),
            ("2026-03-08", 0),
            ("2026-03-07", 1),
            ("2026-02-01", 1),
            ("2026-03-12", 0),
        ],
    )
    def test_threshold_boundary(self, day, expected):
        assert len(derive_critical([invoice(day)], [order(day)], TODAY)) == expected * 2

    @pytest.mark.parametrize(
        "status",
        [InvoiceStatus.PENDING, InvoiceStatus.IN_REVIEW, InvoiceStatus.PRE_ENTRY],
    )
    def test_unresolved_invoice_statuses(self, status):
        assert derive_critical([invoice("2026-03-01", status)], [], TODAY)

    def test_classified_invoice_never_critical(self):
        assert derive_critical([invoice("2025-01-01", InvoiceStatus.CLASSIFIED)], [], TODAY) == []

    def test_completed_order_never_critical(self):
        assert derive_critical([], [order("2025-01-01", OrderStatus.COMPLETED)], TODAY) == []

    def test_source_order_invoices_then_orders(self):
        items = derive_critical(
            [invoice("2026-03-06", numero="A"), invoice("2026-03-01", numero="B")],
            [order("2026-02-01", numero="C")],
            TODAY,
        )

        assert [item.number for item in items] == ["A", "B", "C"]

    def test_empty_inputs(self):
        assert derive_critical([], [], TODAY) == []


class TestOrderingAndSeverity:
    """Tests for sort_by_urgency(), display_prefix() and alert_severity()."""

    def test_sort_by_urgency_oldest_first(self):
        items = derive_critical(
            [invoice("2026-03-06", numero="A"), invoice("2026-03-01", numero="B")],
            [order("2026-03-05", numero="C")],
            TODAY,
        )

        assert [item.number for item in sort_by_urgency(items)] == ["B", "C", "A"]

    def test_sort_is_stable_for_equal_ages(self):
        items = derive_critical(
            [invoice("2026-03-05", numero="A")],
            [order("2026-03-05", numero="B")],
            TODAY,
        )

        assert [item.number for item in sort_by_urgency(items)] == ["A", "B"]

    def test_display_prefix(self):
        items = derive_critical([invoice("2026-03-01", numero=str(i)) for i in range(10)], [], TODAY)

        assert [item.number for item in display_prefix(items)] == [str(i) for i in range(6)]
        assert len(display_prefix(items, 3)) == 3

    @pytest.mark.parametrize("day,severity", [("2026-03-07", "warning"), ("2026-03-06", "warning"), ("2026-03-05", "critical")])
    def test_severity(self, day, severity):
        item = derive_critical([invoice(day)], [], TODAY)[0]

        assert alert_severity(item) == severity
        assert item.to_dict()["severity"] == severity


class TestDayStatus:
    """Tests for day_status()."""

    def status(self, day, invoices=(), orders=(), notes=()):
        return day_status(date.fromisoformat(day), invoices, orders, notes, TODAY)

    def test_today_wins(self):
        assert self.status("2026-03-10", [invoice("2026-03-10")]) is DayStatus.TODAY

    def test_critical(self):
        assert self.status("2026-03-07", [invoice("2026-03-07")]) is DayStatus.CRITICAL

    def test_critical_beats_complete_orders(self):
        invoices = [invoice("2026-03-05")]
        orders = [order("2026-03-05", OrderStatus.COMPLETED)]
        assert self.status("2026-03-05", invoices, orders) is DayStatus.CRITICAL

    def test_complete(self):
        invoices = [invoice("2026-03-05", InvoiceStatus.CLASSIFIED)]
        orders = [order("2026-03-05", OrderStatus.COMPLETED)]
        assert self.status("2026-03-05", invoices, orders) is DayStatus.COMPLETE

    def test_complete_beats_yesterday(self):
        invoices = [invoice("2026-03-09", InvoiceStatus.CLASSIFIED)]
        assert self.status("2026-03-09", invoices) is DayStatus.COMPLETE

    def test_warning(self):
        assert self.status("2026-03-08", [invoice("2026-03-08")]) is DayStatus.WARNING

    def test_yesterday(self):
        assert self.status("2026-03-09", [invoice("2026-03-09")]) is DayStatus.YESTERDAY

    def test_yesterday_without_records(self):
        assert self.status("2026-03-09") is DayStatus.YESTERDAY

    def test_active(self):
        assert self.status("2026-03-05", [], [order("2026-03-05")]) is DayStatus.ACTIVE

    def test_active_future_day(self):
        assert self.status("2026-03-15", [invoice("2026-03-15")]) is DayStatus.ACTIVE

    def test_comment(self):
        notes = [Note(id=None, data="2026-03-05", texto="x")]
        assert self.status("2026-03-05", notes=notes) is DayStatus.COMMENT

    def test_empty(self):
        assert self.status("2026-03-05") is DayStatus.EMPTY

    def test_other_days_ignored(self):
        assert self.status("2026-03-05", [invoice("2026-03-04")]) is DayStatus.EMPTY


class TestMonthAndDashboard:
    """Tests for month_status() and dashboard_summary()."""

    @pytest.fixture
    def state(self):
        return LogbookState(
            invoices=(invoice("2026-03-02"), invoice("2026-03-09", InvoiceStatus.CLASSIFIED)),
            orders=(order("2026-03-01"),),
            notes=(Note(id=None, data="2026-03-03", texto="nota"),),
        )

    def test_month_status_covers_every_day(self, state):
        days = month_status(state, 2026, 3, TODAY)

        assert len(days) == 31
        assert days["2026-03-02"] is DayStatus.CRITICAL
        assert days["2026-03-03"] is DayStatus.COMMENT
        assert days["2026-03-09"] is DayStatus.COMPLETE
        assert days["2026-03-10"] is DayStatus.TODAY
        assert days["2026-03-20"] is DayStatus.EMPTY

    def test_february(self, state):
        assert len(month_status(state, 2026, 2, TODAY)) == 28

    def test_dashboard_summary(self, state):
        assert dashboard_summary(state, TODAY) == {
            "notas": 2,
            "ordens": 1,
            "comentarios": 1,
            "critical": 2,
        }

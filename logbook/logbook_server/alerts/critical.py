"""
Critical-item aggregation and calendar day status.

Everything here is a pure function of the tracked collections and a
reference date: no I/O, no clock reads, no caching. The same inputs always
give the same outputs, so callers recompute on every render or tick.

Rules:
    - Age is the whole calendar-day difference ``today - record date``
    - An invoice is critical when its status is unresolved (Pendente,
      Em Conferência, Pré Nota) and its age is at least 3 days
    - A production order is critical when it is Em Separação and its age
      is at least 3 days
    - A record dated today (age 0) is never critical

Ordering:
    derive_critical() keeps source order: invoices first, then orders.
    Callers that want urgency order call sort_by_urgency(); callers that
    want a bounded list take display_prefix().

How to change safely:
    - Thresholds are module constants; tests pin the boundaries
    - Keep these functions free of side effects
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any

from ..records import (
    Collection,
    Invoice,
    InvoiceStatus,
    LogbookState,
    Note,
    OrderStatus,
    ProductionOrder,
)

CRITICAL_AGE_DAYS = 3
WARNING_AGE_DAYS = 2
SEVERE_AGE_DAYS = 5
DISPLAY_LIMIT = 6


@dataclass(frozen=True)
class CriticalItem:
    """A tracked record flagged as critical.

    Attributes:
        source_id: Id of the source record
        source_kind: Collection the record belongs to
        number: Invoice or order number
        status: Current status value
        date: Record date (YYYY-MM-DD)
        age_days: Whole days between the record date and today
    """

    source_id: str | None
    source_kind: Collection
    number: str
    status: str
    date: str
    age_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_kind": self.source_kind.value,
            "number": self.number,
            "status": self.status,
            "date": self.date,
            "age_days": self.age_days,
            "severity": alert_severity(self),
        }


class DayStatus(Enum):
    """Calendar cell status, in display precedence order."""

    TODAY = "today"
    CRITICAL = "critical"
    COMPLETE = "complete"
    WARNING = "warning"
    YESTERDAY = "yesterday"
    ACTIVE = "active"
    COMMENT = "comment"
    EMPTY = "empty"


def age_days(record_day: date, today: date) -> int:
    """Whole calendar days from ``record_day`` to ``today``.

    Negative for future dates.
    """
    return (today - record_day).days


def derive_critical(
    invoices: Iterable[Invoice],
    orders: Iterable[ProductionOrder],
    today: date,
) -> list[CriticalItem]:
    """Classify critical invoices and orders.

    Args:
        invoices: Invoices in source order
        orders: Production orders in source order
        today: Reference date

    Returns:
        Critical invoices in source order followed by critical orders in
        source order
    """
    items = []
    for invoice in invoices:
        age = age_days(invoice.day, today)
        if invoice.is_unresolved and age >= CRITICAL_AGE_DAYS:
            items.append(
                CriticalItem(
                    source_id=invoice.id,
                    source_kind=Collection.INVOICES,
                    number=invoice.numero,
                    status=invoice.status.value,
                    date=invoice.data,
                    age_days=age,
                )
            )
    for order in orders:
        age = age_days(order.day, today)
        if order.is_unresolved and age >= CRITICAL_AGE_DAYS:
            items.append(
                CriticalItem(
                    source_id=order.id,
                    source_kind=Collection.ORDERS,
                    number=order.numero,
                    status=order.status.value,
                    date=order.data,
                    age_days=age,
                )
            )
    return items


def sort_by_urgency(items: Iterable[CriticalItem]) -> list[CriticalItem]:
    """Oldest first; ties keep their input order."""
    return sorted(items, key=lambda item: item.age_days, reverse=True)


def display_prefix(items: Sequence[CriticalItem], limit: int = DISPLAY_LIMIT) -> list[CriticalItem]:
    """The first ``limit`` items, as shown in the alert panel."""
    return list(items[:limit])


def alert_severity(item: CriticalItem) -> str:
    """Severity label: critical from 5 days on, warning below."""
    return "critical" if item.age_days >= SEVERE_AGE_DAYS else "warning"


def day_status(
    day: date,
    invoices: Iterable[Invoice],
    orders: Iterable[ProductionOrder],
    notes: Iterable[Note],
    today: date,
) -> DayStatus:
    """Status colouring of one calendar cell.

    Only records dated ``day`` are considered. Checks run in this order
    and the first match wins: today, critical (pending invoice at least
    3 days old), complete (activity and everything classified/completed),
    warning (pending invoice at least 2 days old), yesterday, active
    (any invoice or order), comment (notes only), empty.
    """
    day_str = day.isoformat()
    day_invoices = [inv for inv in invoices if inv.data == day_str]
    day_orders = [order for order in orders if order.data == day_str]
    has_notes = any(note.data == day_str for note in notes)
    has_activity = bool(day_invoices or day_orders)
    age = age_days(day, today)

    if day == today:
        return DayStatus.TODAY

    pending_invoice = any(inv.is_unresolved for inv in day_invoices)
    if pending_invoice and age >= CRITICAL_AGE_DAYS:
        return DayStatus.CRITICAL

    if (
        has_activity
        and all(inv.status is InvoiceStatus.CLASSIFIED for inv in day_invoices)
        and all(order.status is OrderStatus.COMPLETED for order in day_orders)
    ):
        return DayStatus.COMPLETE

    if pending_invoice and age >= WARNING_AGE_DAYS:
        return DayStatus.WARNING

    if day == today - timedelta(days=1):
        return DayStatus.YESTERDAY
    if has_activity:
        return DayStatus.ACTIVE
    if has_notes:
        return DayStatus.COMMENT
    return DayStatus.EMPTY


def month_status(state: LogbookState, year: int, month: int, today: date) -> dict[str, DayStatus]:
    """Day status for every day of a month, keyed by YYYY-MM-DD."""
    day = date(year, month, 1)
    result = {}
    while day.month == month:
        result[day.isoformat()] = day_status(day, state.invoices, state.orders, state.notes, today)
        day += timedelta(days=1)
    return result


def dashboard_summary(state: LogbookState, today: date) -> dict[str, int]:
    """Counters shown on the dashboard."""
    counts = state.counts()
    counts["critical"] = len(derive_critical(state.invoices, state.orders, today))
    return counts

"""
Alerts module for the logbook.

Pure derivations over the tracked collections that power alert badges,
the dashboard counters and the calendar colouring.
"""

from .critical import (
    CriticalItem,
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

__all__ = [
    "CriticalItem",
    "DayStatus",
    "age_days",
    "alert_severity",
    "dashboard_summary",
    "day_status",
    "derive_critical",
    "display_prefix",
    "month_status",
    "sort_by_urgency",
]

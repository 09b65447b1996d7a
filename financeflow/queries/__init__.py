"""Deterministic analytics over the ledger."""

from financeflow.queries.analytics import (
    BalancePoint,
    BillUrgency,
    DashboardSummary,
    DateRange,
    KindFilter,
    PeriodReport,
    balance_series,
    bill_urgency,
    dashboard_summary,
    filter_transactions,
    period_report,
    recurring_templates,
    resolve_range,
    upcoming_bills,
)

__all__ = [
    "BalancePoint",
    "BillUrgency",
    "DashboardSummary",
    "DateRange",
    "KindFilter",
    "PeriodReport",
    "balance_series",
    "bill_urgency",
    "dashboard_summary",
    "filter_transactions",
    "period_report",
    "recurring_templates",
    "resolve_range",
    "upcoming_bills",
]

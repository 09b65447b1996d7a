"""
Ledger Analytics

DESIGN DECISION: All figures shown on the dashboard and analytics pages
are computed here, DETERMINISTICALLY, from the session's LedgerState.
The views only format what these functions return.

Recurring templates are definitions, not money movements, so they are
never counted. Transactions dated after "today" (scheduled entries)
are left out of the dashboard balance.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from financeflow.models.state import LedgerState
from financeflow.models.transaction import Bill, Category, Transaction, TransactionKind


class DateRange(str, Enum):
    """Preset ranges on the analytics page."""
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    ALL = "ALL"
    CUSTOM = "CUSTOM"


class KindFilter(str, Enum):
    ALL = "ALL"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class BillUrgency(str, Enum):
    PAID = "paid"
    LATE = "late"
    URGENT = "urgent"
    UPCOMING = "upcoming"


_RANGE_OFFSETS = {
    DateRange.ONE_MONTH: relativedelta(months=1),
    DateRange.THREE_MONTHS: relativedelta(months=3),
    DateRange.SIX_MONTHS: relativedelta(months=6),
    DateRange.ONE_YEAR: relativedelta(years=1),
}


# =============================================================================
# RESULT MODELS
# =============================================================================

class DashboardSummary(BaseModel):
    """Headline numbers for the dashboard."""

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    expenses_by_category: dict[Category, Decimal] = Field(default_factory=dict)
    upcoming_bills: int = Field(
        default=0,
        description="Unpaid bills due within the warning window (overdue included)"
    )
    has_urgent_bills: bool = False


class BalancePoint(BaseModel):
    """One point of the analytics chart."""

    day: date
    value: Decimal


class PeriodReport(BaseModel):
    """Everything the analytics page shows for a range."""

    start: date
    end: date
    transactions: list[Transaction] = Field(default_factory=list)
    series: list[BalancePoint] = Field(default_factory=list)
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense


# =============================================================================
# QUERIES
# =============================================================================

def _realized(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if not t.is_template]


def _totals(transactions: Iterable[Transaction]) -> tuple[Decimal, Decimal]:
    income = Decimal("0")
    expense = Decimal("0")
    for t in transactions:
        if t.kind == TransactionKind.INCOME:
            income += t.amount
        else:
            expense += t.amount
    return income, expense


def _matches_kind(transaction: Transaction, kind_filter: KindFilter) -> bool:
    if kind_filter == KindFilter.ALL:
        return True
    return transaction.kind.value == kind_filter.value


def bill_urgency(
    bill: Bill,
    today: date,
    urgent_days: int = 3,
) -> BillUrgency:
    """Classify a bill for the bills list and the bell alert."""
    if bill.is_paid:
        return BillUrgency.PAID
    days_left = bill.days_until_due(today)
    if days_left < 0:
        return BillUrgency.LATE
    if days_left <= urgent_days:
        return BillUrgency.URGENT
    return BillUrgency.UPCOMING


def upcoming_bills(
    bills: Iterable[Bill],
    today: date,
    window_days: int = 5,
) -> list[Bill]:
    """Unpaid bills due within `window_days`, overdue ones included."""
    return sorted(
        (b for b in bills if not b.is_paid and b.days_until_due(today) <= window_days),
        key=lambda b: b.due_date,
    )


def dashboard_summary(
    state: LedgerState,
    today: date,
    window_days: int = 5,
    urgent_days: int = 3,
) -> DashboardSummary:
    """
    Income, expense and balance of everything dated up to today,
    expenses per category, and the count of bills needing attention.
    """
    current = [t for t in _realized(state.transactions) if t.occurred_on <= today]
    income, expense = _totals(current)

    by_category: dict[Category, Decimal] = defaultdict(lambda: Decimal("0"))
    for t in current:
        if t.kind == TransactionKind.EXPENSE:
            by_category[t.category] += t.amount

    return DashboardSummary(
        total_income=income,
        total_expense=expense,
        balance=income - expense,
        expenses_by_category=dict(
            sorted(by_category.items(), key=lambda item: item[1], reverse=True)
        ),
        upcoming_bills=len(upcoming_bills(state.bills, today, window_days)),
        has_urgent_bills=any(
            bill_urgency(b, today, urgent_days) in (BillUrgency.URGENT, BillUrgency.LATE)
            for b in state.bills
        ),
    )


def resolve_range(
    date_range: DateRange,
    today: date,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> tuple[date, date]:
    """
    Turn a preset (or custom dates) into an inclusive (start, end) pair.

    Raises:
        ValueError: If a custom range is incomplete or reversed
    """
    if date_range == DateRange.CUSTOM:
        if custom_start is None or custom_end is None:
            raise ValueError("Custom range needs both a start and an end date")
        if custom_end < custom_start:
            raise ValueError("Custom range end cannot be before start")
        return custom_start, custom_end

    if date_range == DateRange.ALL:
        return date.min, today

    return today - _RANGE_OFFSETS[date_range], today


def filter_transactions(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
    kind_filter: KindFilter = KindFilter.ALL,
) -> list[Transaction]:
    """Realized transactions in [start, end] matching the kind, newest first."""
    return sorted(
        (
            t for t in _realized(transactions)
            if start <= t.occurred_on <= end and _matches_kind(t, kind_filter)
        ),
        key=lambda t: t.occurred_on,
        reverse=True,
    )


def balance_series(
    transactions: Iterable[Transaction],
    kind_filter: KindFilter = KindFilter.ALL,
) -> list[BalancePoint]:
    """
    Chart data, one point per day.

    With ALL the value is the running balance at the end of the day;
    with INCOME or EXPENSE it is that day's total.
    """
    per_day: dict[date, Decimal] = {}
    running = Decimal("0")

    for t in sorted(transactions, key=lambda t: t.occurred_on):
        if kind_filter == KindFilter.ALL:
            running += t.signed_amount
            per_day[t.occurred_on] = running
        else:
            per_day[t.occurred_on] = per_day.get(t.occurred_on, Decimal("0")) + t.amount

    return [BalancePoint(day=d, value=v) for d, v in per_day.items()]


def period_report(
    state: LedgerState,
    date_range: DateRange,
    today: date,
    kind_filter: KindFilter = KindFilter.ALL,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> PeriodReport:
    """Everything the analytics page needs for one range and filter."""
    start, end = resolve_range(date_range, today, custom_start, custom_end)
    selected = filter_transactions(state.transactions, start, end, kind_filter)
    income, expense = _totals(selected)

    return PeriodReport(
        start=start,
        end=end,
        transactions=selected,
        series=balance_series(selected, kind_filter),
        total_income=income,
        total_expense=expense,
    )


def recurring_templates(
    state: LedgerState,
    kind_filter: KindFilter = KindFilter.ALL,
    include_stopped: bool = False,
) -> list[Transaction]:
    """Templates for the recurring page, soonest next_due first."""
    templates = [
        t for t in state.templates
        if _matches_kind(t, kind_filter)
        and (include_stopped or t.next_due is not None)
    ]
    return sorted(templates, key=lambda t: (t.next_due is None, t.next_due or date.max))

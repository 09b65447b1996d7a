"""Tests for dashboard and analytics queries."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_template, make_transaction
from financeflow.models import Bill, Category, LedgerState, TransactionKind
from financeflow.queries import (
    BillUrgency,
    DateRange,
    KindFilter,
    bill_urgency,
    dashboard_summary,
    period_report,
    recurring_templates,
    resolve_range,
    upcoming_bills,
)


def _bill(name: str, due: date, paid: bool = False) -> Bill:
    return Bill(id=name, name=name, amount=Decimal("10"), due_date=due, is_paid=paid)


@pytest.fixture
def ledger() -> LedgerState:
    return LedgerState(
        transactions=[
            make_template(),
            make_transaction(
                "Salary", date(2024, 3, 1), amount="2000",
                kind=TransactionKind.INCOME, category=Category.SALARY,
            ),
            make_transaction("Affitto", date(2024, 3, 5), amount="800",
                             category=Category.HOUSING, template_id="tpl-1"),
            make_transaction("Pizza", date(2024, 3, 6), amount="20"),
            make_transaction("Sushi", date(2024, 1, 20), amount="40"),
            make_transaction("Concert", date(2024, 4, 2), amount="60",
                             category=Category.LEISURE),
        ],
        bills=[
            _bill("Late", date(2024, 3, 8)),
            _bill("Urgent", date(2024, 3, 12)),
            _bill("Soon", date(2024, 3, 15)),
            _bill("Later", date(2024, 3, 30)),
            _bill("Paid", date(2024, 3, 11), paid=True),
        ],
    )


class TestBills:

    @pytest.mark.parametrize("name,urgency", [
        ("Late", BillUrgency.LATE),
        ("Urgent", BillUrgency.URGENT),
        ("Soon", BillUrgency.UPCOMING),
        ("Paid", BillUrgency.PAID),
    ])
    def test_urgency(self, ledger, today, name, urgency):
        assert bill_urgency(ledger.get_bill(name), today) == urgency

    def test_upcoming_includes_overdue_and_skips_paid(self, ledger, today):
        names = [b.name for b in upcoming_bills(ledger.bills, today, window_days=5)]
        assert names == ["Late", "Urgent", "Soon"]


class TestDashboard:

    def test_totals_ignore_templates_and_future(self, ledger, today):
        summary = dashboard_summary(ledger, today)

        assert summary.total_income == Decimal("2000")
        assert summary.total_expense == Decimal("860")
        assert summary.balance == Decimal("1140")

    def test_expenses_by_category_largest_first(self, ledger, today):
        summary = dashboard_summary(ledger, today)

        assert list(summary.expenses_by_category) == [Category.HOUSING, Category.FOOD]
        assert summary.expenses_by_category[Category.FOOD] == Decimal("60")

    def test_bill_alerts(self, ledger, today):
        summary = dashboard_summary(ledger, today)

        assert summary.upcoming_bills == 3
        assert summary.has_urgent_bills

    def test_empty_ledger(self, today):
        summary = dashboard_summary(LedgerState(), today)

        assert summary.balance == Decimal("0")
        assert summary.upcoming_bills == 0
        assert not summary.has_urgent_bills


class TestRanges:

    def test_one_month(self, today):
        assert resolve_range(DateRange.ONE_MONTH, today) == (date(2024, 2, 10), today)

    def test_all(self, today):
        assert resolve_range(DateRange.ALL, today) == (date.min, today)

    def test_custom(self, today):
        start, end = date(2024, 1, 1), date(2024, 1, 31)
        assert resolve_range(DateRange.CUSTOM, today, start, end) == (start, end)

    def test_custom_needs_both_ends(self, today):
        with pytest.raises(ValueError):
            resolve_range(DateRange.CUSTOM, today, date(2024, 1, 1))

    def test_custom_reversed(self, today):
        with pytest.raises(ValueError):
            resolve_range(DateRange.CUSTOM, today, date(2024, 2, 1), date(2024, 1, 1))


class TestPeriodReport:

    def test_one_month_all_kinds(self, ledger, today):
        report = period_report(ledger, DateRange.ONE_MONTH, today)

        assert [t.description for t in report.transactions] == ["Pizza", "Affitto", "Salary"]
        assert report.net == Decimal("1180")
        # Running balance, one point per day
        assert [p.value for p in report.series] == [
            Decimal("2000"), Decimal("1200"), Decimal("1180"),
        ]

    def test_expense_filter_gives_daily_totals(self, ledger, today):
        report = period_report(ledger, DateRange.THREE_MONTHS, today, KindFilter.EXPENSE)

        assert report.total_income == Decimal("0")
        assert [(p.day, p.value) for p in report.series] == [
            (date(2024, 1, 20), Decimal("40")),
            (date(2024, 3, 5), Decimal("800")),
            (date(2024, 3, 6), Decimal("20")),
        ]


class TestRecurringTemplates:

    def test_stopped_hidden_by_default(self, today):
        active = make_template(id="a", next_due=date(2024, 4, 1))
        sooner = make_template(id="b", next_due=date(2024, 3, 20))
        stopped = make_template(id="c").model_copy(update={"next_due": None})
        state = LedgerState(transactions=[active, sooner, stopped])

        assert [t.id for t in recurring_templates(state)] == ["b", "a"]
        assert [t.id for t in recurring_templates(state, include_stopped=True)] == ["b", "a", "c"]

    def test_kind_filter(self):
        income = make_template(
            id="i", kind=TransactionKind.INCOME, category=Category.SALARY,
        )
        state = LedgerState(transactions=[income, make_template(id="e")])

        assert [t.id for t in recurring_templates(state, KindFilter.INCOME)] == ["i"]

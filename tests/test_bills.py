"""Tests for the bill flow and the bill-to-expense bridge."""

from datetime import date
from decimal import Decimal

import pytest

from financeflow.models import (
    AuditEventType,
    BillDraft,
    Category,
    LedgerState,
    TransactionKind,
)
from financeflow.orchestrator import BILL_PAYMENT_PREFIX, BillFlow
from financeflow.services.storage import NotFoundError, StorageError
from financeflow.validation import TransactionValidator, ValidationFailedError


@pytest.fixture
def bill_flow(storage, app_settings, audit_logger) -> BillFlow:
    return BillFlow(
        storage,
        validator=TransactionValidator(app_settings),
        audit_logger=audit_logger,
    )


@pytest.fixture
def state_with_bill(storage, electricity_bill) -> LedgerState:
    storage.bills[electricity_bill.id] = electricity_bill
    return LedgerState(bills=[electricity_bill])


def _mirrors(state: LedgerState) -> list:
    return [
        t for t in state.transactions
        if t.description.startswith(BILL_PAYMENT_PREFIX)
    ]


class TestPayBill:
    """Tests for BillFlow.pay_bill."""

    @pytest.mark.asyncio
    async def test_pay_creates_one_mirrored_expense(
        self, bill_flow, storage, state_with_bill, today
    ):
        result = await bill_flow.pay_bill(state_with_bill, "bill-1", today)

        assert result.bill.is_paid
        assert storage.bills["bill-1"].is_paid

        mirror = result.transaction
        assert mirror.kind == TransactionKind.EXPENSE
        assert mirror.amount == Decimal("50")
        assert mirror.category == Category.HOUSING
        assert mirror.occurred_on == today
        assert mirror.description == "Bill payment: Electricity"
        assert not mirror.is_template
        assert mirror.id in storage.transactions
        assert _mirrors(result.state) == [mirror]

    @pytest.mark.asyncio
    async def test_mirror_is_dated_payment_day_not_due_day(
        self, bill_flow, state_with_bill
    ):
        paid_on = date(2024, 3, 20)

        result = await bill_flow.pay_bill(state_with_bill, "bill-1", paid_on)

        assert result.transaction.occurred_on == paid_on

    @pytest.mark.asyncio
    async def test_paying_twice_books_once(
        self, bill_flow, storage, state_with_bill, today
    ):
        first = await bill_flow.pay_bill(state_with_bill, "bill-1", today)
        second = await bill_flow.pay_bill(first.state, "bill-1", today)

        assert second.already_paid
        assert second.transaction is None
        assert len(_mirrors(second.state)) == 1
        assert len(storage.transactions) == 1

    @pytest.mark.asyncio
    async def test_mirror_failure_keeps_bill_paid(
        self, bill_flow, storage, state_with_bill, today, audit_storage
    ):
        storage.fail_all_creates = True

        result = await bill_flow.pay_bill(state_with_bill, "bill-1", today)

        assert result.bill.is_paid
        assert storage.bills["bill-1"].is_paid
        assert result.transaction is None
        assert result.mirror_error == "insert rejected"
        assert _mirrors(result.state) == []

        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.WRITE_FAILED in types
        assert types[-1] == AuditEventType.BILL_PAID

    @pytest.mark.asyncio
    async def test_mark_paid_failure_raises(
        self, bill_flow, storage, state_with_bill, today
    ):
        storage.fail_bill_updates = True

        with pytest.raises(StorageError):
            await bill_flow.pay_bill(state_with_bill, "bill-1", today)

        assert not storage.bills["bill-1"].is_paid
        assert storage.transactions == {}

    @pytest.mark.asyncio
    async def test_unknown_bill(self, bill_flow, today):
        with pytest.raises(NotFoundError):
            await bill_flow.pay_bill(LedgerState(), "nope", today)


class TestAddAndDeleteBill:
    """Tests for adding and deleting bills."""

    @pytest.mark.asyncio
    async def test_add_bill(self, bill_flow, storage, today, audit_storage):
        draft = BillDraft(
            name="Internet",
            amount=Decimal("29.90"),
            due_date=date(2024, 3, 25),
            category=Category.HOUSING,
        )

        state, bill = await bill_flow.add_bill(LedgerState(), draft, today)

        assert bill.id in storage.bills
        assert not bill.is_paid
        assert state.bills == [bill]
        assert audit_storage.events[-1].event_type == AuditEventType.BILL_CREATED

    @pytest.mark.asyncio
    async def test_bills_kept_in_due_order(
        self, bill_flow, state_with_bill, today
    ):
        draft = BillDraft(name="Water", amount=Decimal("20"), due_date=date(2024, 3, 11))

        state, bill = await bill_flow.add_bill(state_with_bill, draft, today)

        assert [b.name for b in state.bills] == ["Water", "Electricity"]

    @pytest.mark.asyncio
    async def test_invalid_bill_rejected(self, bill_flow, storage, today):
        draft = BillDraft(name="", amount=Decimal("0"), due_date=date(2024, 3, 25))

        with pytest.raises(ValidationFailedError) as exc_info:
            await bill_flow.add_bill(LedgerState(), draft, today)

        fields = {i.field for i in exc_info.value.result.errors}
        assert fields == {"name", "amount"}
        assert storage.bills == {}

    @pytest.mark.asyncio
    async def test_delete_bill(self, bill_flow, storage, state_with_bill):
        state = await bill_flow.delete_bill(state_with_bill, "bill-1")

        assert state.bills == []
        assert storage.bills == {}

    @pytest.mark.asyncio
    async def test_delete_keeps_mirrored_expense(
        self, bill_flow, storage, state_with_bill, today
    ):
        paid = await bill_flow.pay_bill(state_with_bill, "bill-1", today)

        state = await bill_flow.delete_bill(paid.state, "bill-1")

        assert len(_mirrors(state)) == 1
        assert len(storage.transactions) == 1

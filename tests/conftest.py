"""
Shared fixtures.

Test strategy:
1. Unit tests for pure pieces (models, dates, analytics, validation)
2. Flow tests against in-memory storage
3. No real API calls in tests (Supabase and Gemini are mocked)
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from financeflow.audit import AuditLogger
from financeflow.config import AppSettings
from financeflow.models import (
    Bill,
    Category,
    Frequency,
    Transaction,
    TransactionKind,
)
from financeflow.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)


TODAY = date(2024, 3, 10)


class FlakyLedgerStorage(InMemoryLedgerStorage):
    """In-memory storage whose writes can be made to fail per template."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_creates: set[Optional[str]] = set()
        self.failing_updates: set[str] = set()
        self.fail_list = False
        self.fail_bill_updates = False
        self.fail_all_creates = False
        self.bulk_calls: list[int] = []

    async def list_transactions(self):
        if self.fail_list:
            raise StorageError("read timed out")
        return await super().list_transactions()

    async def create_transaction(self, transaction):
        if self.fail_all_creates:
            raise StorageError("insert rejected")
        return await super().create_transaction(transaction)

    async def create_transactions(self, transactions):
        if self.fail_all_creates or any(
            t.template_id in self.failing_creates for t in transactions
        ):
            raise StorageError("insert rejected")
        self.bulk_calls.append(len(transactions))
        return await super().create_transactions(transactions)

    async def update_template_next_due(self, transaction_id, next_due):
        if transaction_id in self.failing_updates:
            raise StorageError("update rejected")
        return await super().update_template_next_due(transaction_id, next_due)

    async def update_bill_paid(self, bill_id, is_paid):
        if self.fail_bill_updates:
            raise StorageError("update rejected")
        return await super().update_bill_paid(bill_id, is_paid)


def make_template(
    description: str = "Affitto",
    amount: str = "800",
    frequency: Optional[Frequency] = Frequency.MONTHLY,
    next_due: date = date(2024, 1, 10),
    id: Optional[str] = "tpl-1",
    kind: TransactionKind = TransactionKind.EXPENSE,
    category: Category = Category.HOUSING,
) -> Transaction:
    return Transaction(
        id=id,
        amount=Decimal(amount),
        kind=kind,
        category=category,
        occurred_on=next_due,
        description=description,
        is_template=True,
        frequency=frequency,
        next_due=next_due,
    )


def make_transaction(
    description: str,
    on: date,
    amount: str = "10",
    kind: TransactionKind = TransactionKind.EXPENSE,
    category: Category = Category.FOOD,
    id: Optional[str] = None,
    template_id: Optional[str] = None,
) -> Transaction:
    return Transaction(
        id=id,
        amount=Decimal(amount),
        kind=kind,
        category=category,
        occurred_on=on,
        description=description,
        template_id=template_id,
    )


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        max_transaction_amount=10000.0,
        future_date_tolerance_days=30,
    )


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def storage() -> FlakyLedgerStorage:
    return FlakyLedgerStorage()


@pytest.fixture
def electricity_bill() -> Bill:
    return Bill(
        id="bill-1",
        name="Electricity",
        amount=Decimal("50"),
        due_date=date(2024, 3, 12),
        category=Category.HOUSING,
    )

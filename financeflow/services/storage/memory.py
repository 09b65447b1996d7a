"""
In-Memory Storage Implementation

Keeps everything in process memory. Used by the test-suite and
for running the app without a Supabase project (demo mode).
"""

from datetime import date
from itertools import count
from typing import Optional

from financeflow.models.audit import AuditEvent
from financeflow.models.transaction import Bill, Transaction
from financeflow.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage backed by dicts keyed on generated ids."""

    def __init__(
        self,
        transactions: Optional[list[Transaction]] = None,
        bills: Optional[list[Bill]] = None,
        pin: Optional[str] = None,
    ):
        self._ids = count(1)
        self.transactions: dict[str, Transaction] = {}
        self.bills: dict[str, Bill] = {}
        self.pin = pin

        for t in transactions or []:
            self._store_transaction(t)
        for b in bills or []:
            self._store_bill(b)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _store_transaction(self, transaction: Transaction) -> Transaction:
        stored = transaction.model_copy(
            update={"id": transaction.id or self._next_id("tx")}
        )
        self.transactions[stored.id] = stored
        return stored

    def _store_bill(self, bill: Bill) -> Bill:
        stored = bill.model_copy(update={"id": bill.id or self._next_id("bill")})
        self.bills[stored.id] = stored
        return stored

    async def list_transactions(self) -> list[Transaction]:
        return sorted(
            self.transactions.values(),
            key=lambda t: t.occurred_on,
            reverse=True,
        )

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        return self._store_transaction(transaction.model_copy(update={"id": None}))

    async def create_transactions(
        self,
        transactions: list[Transaction],
    ) -> list[Transaction]:
        return [
            self._store_transaction(t.model_copy(update={"id": None}))
            for t in transactions
        ]

    async def update_template_next_due(
        self,
        transaction_id: str,
        next_due: date,
    ) -> bool:
        template = self.transactions.get(transaction_id)
        if template is None:
            raise NotFoundError(f"Template not found: {transaction_id}")
        self.transactions[transaction_id] = template.model_copy(
            update={"next_due": next_due}
        )
        return True

    async def stop_recurrence(self, transaction_id: str) -> bool:
        template = self.transactions.get(transaction_id)
        if template is None:
            raise NotFoundError(f"Template not found: {transaction_id}")
        self.transactions[transaction_id] = template.model_copy(
            update={"next_due": None}
        )
        return True

    async def list_bills(self) -> list[Bill]:
        return sorted(self.bills.values(), key=lambda b: b.due_date)

    async def create_bill(self, bill: Bill) -> Bill:
        return self._store_bill(bill.model_copy(update={"id": None}))

    async def update_bill_paid(self, bill_id: str, is_paid: bool) -> bool:
        bill = self.bills.get(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        self.bills[bill_id] = bill.model_copy(update={"is_paid": is_paid})
        return True

    async def delete_bill(self, bill_id: str) -> bool:
        self.bills.pop(bill_id, None)
        return True

    async def get_pin(self) -> Optional[str]:
        return self.pin

    async def set_pin(self, pin: Optional[str]) -> bool:
        self.pin = pin
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

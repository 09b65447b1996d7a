"""
Ledger Session State

DESIGN DECISION: The in-memory collections the UI renders are held in an
explicit state object that is passed into, and returned from, the backfill
engine and the flows. Nothing mutates it in place; every change returns a
new LedgerState, so the engine can be tested without a UI harness.

Storage remains the source of truth on load.
"""

from typing import Iterable, Optional

from pydantic import BaseModel, Field

from financeflow.models.transaction import Bill, Transaction


class LedgerState(BaseModel):
    """Snapshot of everything a session has loaded."""

    transactions: list[Transaction] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    pin: Optional[str] = None

    @property
    def templates(self) -> list[Transaction]:
        return [t for t in self.transactions if t.is_template]

    @property
    def entries(self) -> list[Transaction]:
        """Realized transactions (everything except templates)."""
        return [t for t in self.transactions if not t.is_template]

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for t in self.transactions:
            if t.id == transaction_id:
                return t
        return None

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        for b in self.bills:
            if b.id == bill_id:
                return b
        return None

    def with_transactions(self, transactions: Iterable[Transaction]) -> 'LedgerState':
        """Replace the transaction collection."""
        return self.model_copy(update={"transactions": list(transactions)})

    def add_transactions(self, new: Iterable[Transaction]) -> 'LedgerState':
        """Prepend newly created transactions (newest first, like storage reads)."""
        return self.model_copy(update={"transactions": list(new) + self.transactions})

    def replace_transaction(self, updated: Transaction) -> 'LedgerState':
        return self.model_copy(update={
            "transactions": [
                updated if t.id == updated.id else t for t in self.transactions
            ]
        })

    def with_bills(self, bills: Iterable[Bill]) -> 'LedgerState':
        return self.model_copy(update={"bills": list(bills)})

    def replace_bill(self, updated: Bill) -> 'LedgerState':
        return self.model_copy(update={
            "bills": [updated if b.id == updated.id else b for b in self.bills]
        })

    def without_bill(self, bill_id: str) -> 'LedgerState':
        return self.model_copy(update={
            "bills": [b for b in self.bills if b.id != bill_id]
        })

    def with_pin(self, pin: Optional[str]) -> 'LedgerState':
        return self.model_copy(update={"pin": pin})

"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the backfill engine and flows independent of Supabase
2. Use in-memory storage for testing
3. Swap the hosted store later without touching business logic

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.

CONTRACT: a create either fully succeeds (returns the record with its
assigned id) or raises StorageError with nothing persisted. Within a
session, a just-created record is visible to the next list call.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from financeflow.models.audit import AuditEvent
from financeflow.models.transaction import Bill, Transaction


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Supabase, in-memory, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """
        Read all transactions, templates included.

        Returns:
            Transactions, newest first
        """
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Args:
            transaction: Transaction without an id

        Returns:
            The stored transaction, with its assigned id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def create_transactions(
        self,
        transactions: list[Transaction],
    ) -> list[Transaction]:
        """
        Persist several transactions in one bulk write.

        Args:
            transactions: Transactions without ids

        Returns:
            The stored transactions, in input order

        Raises:
            StorageError: If the write fails (nothing is persisted)
        """
        pass

    @abstractmethod
    async def update_template_next_due(
        self,
        transaction_id: str,
        next_due: date,
    ) -> bool:
        """
        Move a template's next_due cursor.

        Args:
            transaction_id: The template's id
            next_due: New cursor value

        Returns:
            True if updated successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def stop_recurrence(self, transaction_id: str) -> bool:
        """
        Stop a template from generating further occurrences.

        Clears next_due; the template row is kept for history.

        Raises:
            StorageError: If the write fails
        """
        pass

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_bills(self) -> list[Bill]:
        """
        Read all bills.

        Returns:
            Bills ordered by due date
        """
        pass

    @abstractmethod
    async def create_bill(self, bill: Bill) -> Bill:
        """
        Persist a new bill.

        Returns:
            The stored bill, with its assigned id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_bill_paid(self, bill_id: str, is_paid: bool) -> bool:
        """
        Set a bill's paid flag.

        Raises:
            StorageError: If the write fails
            NotFoundError: If the bill doesn't exist
        """
        pass

    @abstractmethod
    async def delete_bill(self, bill_id: str) -> bool:
        """
        Delete a bill by ID.

        Returns:
            True if deleted successfully
        """
        pass

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_pin(self) -> Optional[str]:
        """Return the stored PIN, or None when no PIN is set."""
        pass

    @abstractmethod
    async def set_pin(self, pin: Optional[str]) -> bool:
        """
        Store the PIN, or remove it when `pin` is None.

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass

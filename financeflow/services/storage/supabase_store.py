"""
Supabase Storage Implementation

DESIGN DECISION: Supabase (hosted Postgres) is the storage backend because:
1. The same tables are shared by every device the user opens the app on
2. No server of our own to run
3. Rows are plain JSON over the REST API, easy to inspect and export

TRADEOFFS:
- No multi-statement transactions through the REST API, so the
  backfill's writes are independent (see recurrence.backfill)
- The client is synchronous; calls block the event loop briefly,
  which is fine for a single-user session

Reads and connection setup are retried with backoff. Writes are NOT
retried: a failed write is reported to the caller, which decides
whether to skip it (automated backfill) or surface it (user action).
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from supabase import Client, create_client
from tenacity import retry, stop_after_attempt, wait_exponential

from financeflow.config import SupabaseSettings, get_settings
from financeflow.models.audit import AuditEvent
from financeflow.models.transaction import (
    Bill,
    Category,
    Frequency,
    Transaction,
    TransactionKind,
)
from financeflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger()

PIN_KEY = "app_pin"


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles connection setup and provides retry logic for reads.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        client: Optional[Client] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._client = client

    @property
    def settings(self) -> SupabaseSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Client:
        """Create the Supabase client on first use."""
        if self._client is None:
            try:
                self._client = create_client(self._settings.url, self._settings.key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")

        return self._client

    def table(self, name: str):
        """Start a query on a table."""
        return self.connect().table(name)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def select_all(
        self,
        table: str,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Read every row of a table, optionally ordered and limited."""
        query = self.table(table).select("*")
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        return query.execute().data or []


# =============================================================================
# ROW MAPPING
# =============================================================================

def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    # Columns may be timestamps; keep the calendar day only
    return date.fromisoformat(str(value)[:10])


# Labels written by the first version of the app
LEGACY_CATEGORY_LABELS = {
    "alimentari": Category.FOOD,
    "casa & bollette": Category.HOUSING,
    "trasporti": Category.TRANSPORT,
    "tempo libero": Category.LEISURE,
    "salute": Category.HEALTH,
    "shopping": Category.SHOPPING,
    "istruzione": Category.EDUCATION,
    "investimenti": Category.INVESTMENT,
    "stipendio": Category.SALARY,
    "bonus": Category.BONUS,
    "rimborsi": Category.REFUND,
    "altro": Category.OTHER,
}


def _parse_category(value: Any) -> Category:
    """Legacy labels are mapped; anything else unknown falls back to OTHER."""
    cleaned = str(value).strip().lower()
    try:
        return Category(cleaned)
    except ValueError:
        return LEGACY_CATEGORY_LABELS.get(cleaned, Category.OTHER)


def _parse_frequency(value: Any) -> Optional[Frequency]:
    if not value:
        return None
    try:
        return Frequency(str(value).upper())
    except ValueError:
        logger.warning("unknown_frequency", value=value)
        return None


def _row_to_transaction(row: dict) -> Transaction:
    is_template = bool(row.get("is_recurring"))
    return Transaction(
        id=str(row["id"]),
        amount=Decimal(str(row.get("amount") or 0)),
        kind=TransactionKind(str(row.get("type", "EXPENSE")).upper()),
        category=_parse_category(row.get("category")),
        subcategory=row.get("subcategory") or None,
        occurred_on=_parse_date(row["date"]),
        description=row.get("description") or "",
        is_template=is_template,
        frequency=_parse_frequency(row.get("recurrence_frequency")) if is_template else None,
        next_due=_parse_date(row.get("next_recurring_date")) if is_template else None,
        template_id=None if is_template else (
            str(row["template_id"]) if row.get("template_id") else None
        ),
        receipt_image=row.get("receipt_image") or None,
    )


def _transaction_to_row(transaction: Transaction) -> dict:
    return {
        "amount": str(transaction.amount),
        "type": transaction.kind.value,
        "category": transaction.category.value,
        "subcategory": transaction.subcategory,
        "date": transaction.occurred_on.isoformat(),
        "description": transaction.description,
        "receipt_image": transaction.receipt_image,
        "is_recurring": transaction.is_template,
        "recurrence_frequency": transaction.frequency.value if transaction.frequency else None,
        "next_recurring_date": transaction.next_due.isoformat() if transaction.next_due else None,
        "template_id": transaction.template_id,
    }


def _row_to_bill(row: dict) -> Bill:
    return Bill(
        id=str(row["id"]),
        name=row["name"],
        amount=Decimal(str(row.get("amount") or 0)),
        due_date=_parse_date(row["due_date"]),
        category=_parse_category(row.get("category")),
        is_paid=bool(row.get("is_paid")),
        attachment=row.get("attachment") or None,
    )


def _bill_to_row(bill: Bill) -> dict:
    return {
        "name": bill.name,
        "amount": str(bill.amount),
        "due_date": bill.due_date.isoformat(),
        "category": bill.category.value,
        "is_paid": bill.is_paid,
        "attachment": bill.attachment,
    }


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class SupabaseLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage on Supabase tables.

    Tables:
    - transactions: plain entries, templates and occurrences
    - bills
    - settings: key/value rows (the PIN lives under 'app_pin')
    """

    def __init__(self, client: SupabaseClient):
        self._client = client
        self._settings = client.settings

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(self) -> list[Transaction]:
        try:
            rows = self._client.select_all(
                self._settings.transactions_table,
                order_by="date",
                desc=True,
            )
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        return [_row_to_transaction(row) for row in rows]

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        created = await self.create_transactions([transaction])
        return created[0]

    async def create_transactions(
        self,
        transactions: list[Transaction],
    ) -> list[Transaction]:
        if not transactions:
            return []

        payload = [_transaction_to_row(t) for t in transactions]
        try:
            response = (
                self._client.table(self._settings.transactions_table)
                .insert(payload)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to save transactions: {e}")

        rows = response.data or []
        if len(rows) != len(payload):
            raise StorageError(
                f"Expected {len(payload)} inserted rows, got {len(rows)}"
            )
        return [_row_to_transaction(row) for row in rows]

    async def update_template_next_due(
        self,
        transaction_id: str,
        next_due: date,
    ) -> bool:
        try:
            response = (
                self._client.table(self._settings.transactions_table)
                .update({"next_recurring_date": next_due.isoformat()})
                .eq("id", transaction_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update next due date: {e}")

        if not response.data:
            raise NotFoundError(f"Template not found: {transaction_id}")
        return True

    async def stop_recurrence(self, transaction_id: str) -> bool:
        try:
            response = (
                self._client.table(self._settings.transactions_table)
                .update({"next_recurring_date": None})
                .eq("id", transaction_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to stop recurrence: {e}")

        if not response.data:
            raise NotFoundError(f"Template not found: {transaction_id}")
        return True

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def list_bills(self) -> list[Bill]:
        try:
            rows = self._client.select_all(
                self._settings.bills_table,
                order_by="due_date",
            )
        except Exception as e:
            raise StorageError(f"Failed to list bills: {e}")

        return [_row_to_bill(row) for row in rows]

    async def create_bill(self, bill: Bill) -> Bill:
        try:
            response = (
                self._client.table(self._settings.bills_table)
                .insert(_bill_to_row(bill))
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to save bill: {e}")

        if not response.data:
            raise StorageError("Bill insert returned no row")
        return _row_to_bill(response.data[0])

    async def update_bill_paid(self, bill_id: str, is_paid: bool) -> bool:
        try:
            response = (
                self._client.table(self._settings.bills_table)
                .update({"is_paid": is_paid})
                .eq("id", bill_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to update bill: {e}")

        if not response.data:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return True

    async def delete_bill(self, bill_id: str) -> bool:
        try:
            (
                self._client.table(self._settings.bills_table)
                .delete()
                .eq("id", bill_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to delete bill: {e}")
        return True

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_pin(self) -> Optional[str]:
        try:
            response = (
                self._client.table(self._settings.settings_table)
                .select("value")
                .eq("key", PIN_KEY)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to read PIN: {e}")

        rows = response.data or []
        if not rows:
            return None
        return rows[0].get("value") or None

    async def set_pin(self, pin: Optional[str]) -> bool:
        table = self._client.table(self._settings.settings_table)
        try:
            if pin is None:
                table.delete().eq("key", PIN_KEY).execute()
            else:
                table.upsert({"key": PIN_KEY, "value": pin}).execute()
        except Exception as e:
            raise StorageError(f"Failed to save PIN: {e}")
        return True


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class SupabaseAuditStorage(AuditStorageInterface):
    """Append-only audit log on the audit_log table."""

    def __init__(self, client: SupabaseClient):
        self._client = client
        self._settings = client.settings

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            (
                self._client.table(self._settings.audit_table)
                .insert(event.to_row())
                .execute()
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to append audit event: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            rows = self._client.select_all(
                self._settings.audit_table,
                order_by="timestamp",
                desc=True,
                limit=limit,
            )
        except Exception as e:
            raise StorageError(f"Failed to read audit log: {e}")

        return [AuditEvent.model_validate(row) for row in rows]

"""
Main Orchestrator for FinanceFlow

This module ties together all the components and defines the
end-to-end flows for:
1. Session load (read everything → backfill recurring templates)
2. Transaction entry (validate → save → backfill a backdated template)
3. Bills (add, pay → mirrored expense, delete)
4. Settings (PIN)

DESIGN DECISION: Every flow takes the current LedgerState and returns
a new one. The flows never hold the state themselves, so the UI owns
exactly one copy and each step is testable in isolation.

User-triggered writes raise StorageError so the UI can show a message.
Automated writes (the backfill, the mirrored bill expense) are logged
and never raised.
"""

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from financeflow.agents import FinanceAssistant, load_receipt_image, receipt_data_url
from financeflow.audit import AuditLogger, create_correlation_id
from financeflow.config import get_settings
from financeflow.models.state import LedgerState
from financeflow.models.transaction import (
    Bill,
    BillDraft,
    Category,
    ReceiptExtraction,
    Transaction,
    TransactionDraft,
    TransactionKind,
    ValidationResult,
)
from financeflow.recurrence import (
    BackfillResult,
    OccurrenceIndex,
    TemplateBackfill,
    apply_template_results,
    backfill_template,
    run_backfill,
)
from financeflow.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseLedgerStorage,
)
from financeflow.validation import TransactionValidator, ValidationFailedError


logger = structlog.get_logger()

BILL_PAYMENT_PREFIX = "Bill payment: "


class LedgerSession:
    """
    Loads a session and brings recurring templates up to date.

    Flow:
    1. Read transactions, bills and PIN from storage
    2. Run the backfill for every due template
    3. Hand the resulting state to the UI

    The backfill finishes before the state is returned, so the UI
    never shows a ledger with missing occurrences.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def load(
        self,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> BackfillResult:
        """
        Load everything and backfill.

        Raises:
            StorageError: If the initial reads fail
        """
        correlation_id = correlation_id or create_correlation_id()

        transactions = await self._storage.list_transactions()
        bills = await self._storage.list_bills()
        pin = await self._storage.get_pin()
        state = LedgerState(transactions=transactions, bills=bills, pin=pin)

        if self._audit_logger:
            await self._audit_logger.log_session_loaded(
                transaction_count=len(transactions),
                bill_count=len(bills),
                correlation_id=correlation_id,
            )

        return await run_backfill(
            state,
            self._storage,
            today,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id,
        )


class EntryResult(BaseModel):
    """Outcome of saving a user-entered transaction."""

    state: LedgerState
    transaction: Transaction = Field(
        ...,
        description="The saved transaction or template"
    )
    validation: ValidationResult
    backfill: Optional[TemplateBackfill] = Field(
        default=None,
        description="Immediate backfill of a backdated template"
    )


class TransactionEntryFlow:
    """
    Orchestrates adding a transaction.

    Flow:
    1. Validate the draft (errors block, warnings are returned)
    2. Save it (a recurring draft becomes a template)
    3. If the template's first due date is today or earlier, backfill
       that template right away using its new id

    Step 3 means a backdated recurring entry shows all of its past
    occurrences immediately, not only after the next session load.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[TransactionValidator] = None,
        assistant: Optional[FinanceAssistant] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        self._storage = storage
        self._validator = validator or TransactionValidator()
        self._assistant = assistant
        self._audit_logger = audit_logger
        self._max_upload_bytes = (
            max_upload_bytes or get_settings().app.max_upload_size_bytes
        )

    @property
    def has_assistant(self) -> bool:
        return self._assistant is not None

    def validate(
        self,
        state: LedgerState,
        draft: TransactionDraft,
        today: date,
    ) -> ValidationResult:
        return self._validator.validate_transaction(draft, today, state.transactions)

    def summarize_validation(self, result: ValidationResult) -> str:
        return self._validator.get_user_friendly_summary(result)

    async def add_transaction(
        self,
        state: LedgerState,
        draft: TransactionDraft,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> EntryResult:
        """
        Validate, save and (for backdated templates) backfill.

        Raises:
            ValidationFailedError: If the draft has errors
            StorageError: If saving the transaction fails
        """
        correlation_id = correlation_id or create_correlation_id()

        validation = self.validate(state, draft, today)
        if not validation.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    entity_type="transaction",
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in validation.errors
                    ],
                    correlation_id=correlation_id,
                )
            raise ValidationFailedError(validation)

        saved = await self._storage.create_transaction(draft.to_transaction())
        state = state.add_transactions([saved])

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=saved.id,
                description=saved.description,
                amount=str(saved.amount),
                is_template=saved.is_template,
                correlation_id=correlation_id,
            )

        backfill = None
        if saved.is_template and saved.next_due is not None and saved.next_due <= today:
            backfill = await backfill_template(
                saved,
                OccurrenceIndex(state.transactions),
                self._storage,
                today,
                audit_logger=self._audit_logger,
                correlation_id=correlation_id,
            )
            state = apply_template_results(state, [backfill])
            if backfill.advanced:
                saved = backfill.template

        return EntryResult(
            state=state,
            transaction=saved,
            validation=validation,
            backfill=backfill,
        )

    async def stop_recurrence(
        self,
        state: LedgerState,
        template_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerState:
        """
        Stop a template; its past occurrences are kept.

        Raises:
            NotFoundError: If the template is unknown
            StorageError: If the write fails
        """
        correlation_id = correlation_id or create_correlation_id()

        template = state.get_transaction(template_id)
        if template is None or not template.is_template:
            raise NotFoundError(f"Recurring transaction not found: {template_id}")

        await self._storage.stop_recurrence(template_id)

        if self._audit_logger:
            await self._audit_logger.log_recurrence_stopped(
                template_id=template_id,
                correlation_id=correlation_id,
            )

        return state.replace_transaction(template.model_copy(update={"next_due": None}))

    async def suggest_category(
        self,
        description: str,
        kind: TransactionKind,
    ) -> Optional[Category]:
        """AI category suggestion, None when no assistant is configured."""
        if not self._assistant:
            return None
        return await self._assistant.predict_category(description, kind)

    async def read_receipt(
        self,
        image_bytes: bytes,
    ) -> tuple[Optional[ReceiptExtraction], Optional[str]]:
        """
        Read a receipt photo.

        Returns:
            (proposed_fields, receipt_data_url)
            proposed_fields is None when no assistant is configured or
            reading failed; the data URL is None if the image is unreadable
            or larger than the upload limit.
        """
        if len(image_bytes) > self._max_upload_bytes:
            logger.warning(
                "receipt_image_too_large",
                size=len(image_bytes),
                limit=self._max_upload_bytes,
            )
            return None, None

        try:
            data_url = receipt_data_url(load_receipt_image(image_bytes))
        except ValueError as e:
            logger.warning("receipt_image_rejected", error=str(e))
            return None, None

        if not self._assistant:
            return None, data_url

        extraction = await self._assistant.analyze_receipt(image_bytes)
        return extraction, data_url


class BillPaymentResult(BaseModel):
    """Outcome of paying a bill."""

    state: LedgerState
    bill: Bill
    transaction: Optional[Transaction] = Field(
        default=None,
        description="Mirrored expense, if it was created"
    )
    already_paid: bool = False
    mirror_error: Optional[str] = None


class BillFlow:
    """
    Orchestrates bills.

    Paying a bill is a two-step, best-effort sequence:
    1. Mark it paid (raises on failure)
    2. Record a mirrored expense dated today (logged on failure,
       step 1 is NOT rolled back)

    Paying a bill that is already paid does nothing, so a retried
    click never books the expense twice.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger

    async def add_bill(
        self,
        state: LedgerState,
        draft: BillDraft,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[LedgerState, Bill]:
        """
        Validate and save a bill.

        Raises:
            ValidationFailedError: If the draft has errors
            StorageError: If the write fails
        """
        correlation_id = correlation_id or create_correlation_id()

        validation = self._validator.validate_bill(draft, today)
        if not validation.is_valid:
            raise ValidationFailedError(validation)

        saved = await self._storage.create_bill(draft.to_bill())

        if self._audit_logger:
            await self._audit_logger.log_bill_created(
                bill_id=saved.id,
                name=saved.name,
                amount=str(saved.amount),
                correlation_id=correlation_id,
            )

        bills = sorted(state.bills + [saved], key=lambda b: b.due_date)
        return state.with_bills(bills), saved

    async def pay_bill(
        self,
        state: LedgerState,
        bill_id: str,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> BillPaymentResult:
        """
        Mark a bill paid and mirror it as an expense.

        Raises:
            NotFoundError: If the bill is unknown
            StorageError: If marking the bill paid fails
        """
        correlation_id = correlation_id or create_correlation_id()

        bill = state.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")

        if bill.is_paid:
            logger.info("bill_already_paid", bill_id=bill_id)
            return BillPaymentResult(state=state, bill=bill, already_paid=True)

        # Step 1
        await self._storage.update_bill_paid(bill_id, True)
        paid = bill.model_copy(update={"is_paid": True})
        state = state.replace_bill(paid)

        # Step 2
        mirrored = None
        mirror_error = None
        try:
            mirrored = await self._storage.create_transaction(Transaction(
                amount=Decimal(bill.amount),
                kind=TransactionKind.EXPENSE,
                category=bill.category,
                occurred_on=today,
                description=f"{BILL_PAYMENT_PREFIX}{bill.name}",
            ))
            state = state.add_transactions([mirrored])
        except StorageError as e:
            mirror_error = str(e)
            logger.error("bill_mirror_failed", bill_id=bill_id, error=mirror_error)
            if self._audit_logger:
                await self._audit_logger.log_write_failed(
                    operation="create_bill_payment",
                    entity_type="bill",
                    entity_id=bill_id,
                    error_message=mirror_error,
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_bill_paid(
                bill_id=bill_id,
                name=bill.name,
                mirrored_transaction_id=mirrored.id if mirrored else None,
                correlation_id=correlation_id,
            )

        return BillPaymentResult(
            state=state,
            bill=paid,
            transaction=mirrored,
            mirror_error=mirror_error,
        )

    async def delete_bill(
        self,
        state: LedgerState,
        bill_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerState:
        """
        Delete a bill.

        Raises:
            StorageError: If the write fails
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._storage.delete_bill(bill_id)

        if self._audit_logger:
            await self._audit_logger.log_bill_deleted(
                bill_id=bill_id,
                correlation_id=correlation_id,
            )

        return state.without_bill(bill_id)


class SettingsFlow:
    """PIN lock settings."""

    PIN_LENGTH = 4

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    @classmethod
    def is_valid_pin(cls, pin: str) -> bool:
        return len(pin) == cls.PIN_LENGTH and pin.isdigit()

    async def set_pin(
        self,
        state: LedgerState,
        pin: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerState:
        """
        Set the PIN, or remove it with None.

        Raises:
            ValueError: If the PIN is not exactly four digits
            StorageError: If the write fails
        """
        correlation_id = correlation_id or create_correlation_id()

        if pin is not None and not self.is_valid_pin(pin):
            raise ValueError(f"PIN must be exactly {self.PIN_LENGTH} digits")

        await self._storage.set_pin(pin)

        if self._audit_logger:
            await self._audit_logger.log_pin_updated(
                enabled=pin is not None,
                correlation_id=correlation_id,
            )

        return state.with_pin(pin)

    @staticmethod
    def unlock(state: LedgerState, attempt: str) -> bool:
        """True if no PIN is set or the attempt matches."""
        if not state.pin:
            return True
        return attempt == state.pin


class AppComponents(NamedTuple):
    session: LedgerSession
    entry_flow: TransactionEntryFlow
    bill_flow: BillFlow
    settings_flow: SettingsFlow
    assistant: Optional[FinanceAssistant]
    audit_logger: AuditLogger
    persistent: bool


def create_app_components(
    use_storage: bool = True,
    use_assistant: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect to Supabase.
                    Falls back to in-memory storage (demo mode)
                    when False or when Supabase isn't configured.
        use_assistant: Whether to set up the Gemini assistant.

    Returns:
        AppComponents
    """
    storage: LedgerStorageInterface
    persistent = False

    if use_storage:
        try:
            client = SupabaseClient()
            storage = SupabaseLedgerStorage(client)
            audit_logger = AuditLogger(SupabaseAuditStorage(client))
            persistent = True
        except Exception as e:
            # Storage not configured - continue in demo mode
            logger.warning("storage_not_configured", error=str(e))
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    assistant = None
    if use_assistant:
        try:
            assistant = FinanceAssistant(audit_logger=audit_logger)
        except Exception as e:
            logger.warning("assistant_not_configured", error=str(e))

    validator = TransactionValidator()

    return AppComponents(
        session=LedgerSession(storage, audit_logger=audit_logger),
        entry_flow=TransactionEntryFlow(
            storage,
            validator=validator,
            assistant=assistant,
            audit_logger=audit_logger,
        ),
        bill_flow=BillFlow(storage, validator=validator, audit_logger=audit_logger),
        settings_flow=SettingsFlow(storage, audit_logger=audit_logger),
        assistant=assistant,
        audit_logger=audit_logger,
        persistent=persistent,
    )

"""Tests for session load and the transaction entry flow."""

import io
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from conftest import make_template, make_transaction
from financeflow.models import (
    AuditEventType,
    Category,
    Frequency,
    LedgerState,
    TransactionDraft,
    TransactionKind,
)
from financeflow.orchestrator import LedgerSession, TransactionEntryFlow
from financeflow.services.storage import NotFoundError, StorageError
from financeflow.validation import TransactionValidator, ValidationFailedError


@pytest.fixture
def entry_flow(storage, app_settings, audit_logger) -> TransactionEntryFlow:
    return TransactionEntryFlow(
        storage,
        validator=TransactionValidator(app_settings),
        audit_logger=audit_logger,
    )


def _draft(**overrides) -> TransactionDraft:
    values = {
        "amount": Decimal("12.50"),
        "kind": TransactionKind.EXPENSE,
        "category": Category.FOOD,
        "occurred_on": date(2024, 3, 9),
        "description": "Groceries",
    }
    values.update(overrides)
    return TransactionDraft(**values)


class TestLedgerSession:
    """Tests for session load."""

    @pytest.mark.asyncio
    async def test_load_reads_everything_and_backfills(self, storage, today, audit_logger):
        storage.transactions["tpl-1"] = make_template()
        storage.pin = "1234"

        result = await LedgerSession(storage, audit_logger).load(today)

        assert result.state.pin == "1234"
        assert len(result.created) == 3
        assert len(result.state.entries) == 3
        assert result.state.get_transaction("tpl-1").next_due == date(2024, 4, 10)

    @pytest.mark.asyncio
    async def test_load_logs_session(self, storage, today, audit_logger, audit_storage):
        await LedgerSession(storage, audit_logger).load(today)

        assert audit_storage.events[0].event_type == AuditEventType.SESSION_LOADED

    @pytest.mark.asyncio
    async def test_load_propagates_read_failure(self, storage, today):
        storage.fail_list = True

        with pytest.raises(StorageError):
            await LedgerSession(storage).load(today)


class TestAddTransaction:
    """Tests for TransactionEntryFlow.add_transaction."""

    @pytest.mark.asyncio
    async def test_one_off_is_saved(self, entry_flow, storage, today):
        result = await entry_flow.add_transaction(LedgerState(), _draft(), today)

        assert result.transaction.id in storage.transactions
        assert not result.transaction.is_template
        assert result.state.transactions[0] == result.transaction
        assert result.backfill is None

    @pytest.mark.asyncio
    async def test_invalid_draft_is_rejected(self, entry_flow, storage, today, audit_storage):
        with pytest.raises(ValidationFailedError) as exc_info:
            await entry_flow.add_transaction(
                LedgerState(), _draft(amount=Decimal("0")), today
            )

        assert exc_info.value.result.errors[0].field == "amount"
        assert storage.transactions == {}
        assert audit_storage.events[-1].event_type == AuditEventType.VALIDATION_FAILED

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, entry_flow, storage, today):
        storage.fail_all_creates = True

        with pytest.raises(StorageError):
            await entry_flow.add_transaction(LedgerState(), _draft(), today)

    @pytest.mark.asyncio
    async def test_backdated_recurring_is_backfilled_immediately(
        self, entry_flow, storage, today
    ):
        draft = _draft(
            description="Affitto",
            amount=Decimal("800"),
            category=Category.HOUSING,
            occurred_on=date(2024, 1, 10),
            is_recurring=True,
            frequency=Frequency.MONTHLY,
        )

        result = await entry_flow.add_transaction(LedgerState(), draft, today)

        template = result.transaction
        assert template.is_template
        assert template.next_due == date(2024, 4, 10)
        assert storage.transactions[template.id].next_due == date(2024, 4, 10)

        occurrences = sorted(t.occurred_on for t in result.state.entries)
        assert occurrences == [date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10)]
        assert all(t.template_id == template.id for t in result.state.entries)

    @pytest.mark.asyncio
    async def test_future_recurring_waits_for_due_date(self, entry_flow, storage, today):
        draft = _draft(
            occurred_on=date(2024, 3, 20),
            is_recurring=True,
            frequency=Frequency.WEEKLY,
        )

        result = await entry_flow.add_transaction(LedgerState(), draft, today)

        assert result.backfill is None
        assert result.transaction.next_due == date(2024, 3, 20)
        assert result.state.entries == []

    @pytest.mark.asyncio
    async def test_explicit_first_due_date_is_kept(self, entry_flow, today):
        draft = _draft(
            occurred_on=date(2024, 3, 1),
            next_due=date(2024, 4, 1),
            is_recurring=True,
            frequency=Frequency.MONTHLY,
        )

        result = await entry_flow.add_transaction(LedgerState(), draft, today)

        assert result.transaction.next_due == date(2024, 4, 1)
        assert result.state.entries == []

    @pytest.mark.asyncio
    async def test_warnings_do_not_block(self, entry_flow, today):
        existing = make_transaction("Groceries", date(2024, 3, 9), amount="12.50", id="a")
        state = LedgerState(transactions=[existing])

        result = await entry_flow.add_transaction(state, _draft(), today)

        assert result.validation.is_valid
        assert result.validation.warnings[0].issue_type == "potential_duplicate"
        assert len(result.state.transactions) == 2


class TestStopRecurrence:
    """Tests for TransactionEntryFlow.stop_recurrence."""

    @pytest.mark.asyncio
    async def test_stop_keeps_history(self, entry_flow, storage):
        storage.transactions["tpl-1"] = make_template(next_due=date(2024, 4, 10))
        state = LedgerState(transactions=[
            storage.transactions["tpl-1"],
            make_transaction("Affitto", date(2024, 3, 10), id="occ", template_id="tpl-1"),
        ])

        state = await entry_flow.stop_recurrence(state, "tpl-1")

        template = state.get_transaction("tpl-1")
        assert template.is_template
        assert template.next_due is None
        assert storage.transactions["tpl-1"].next_due is None
        assert state.get_transaction("occ") is not None

    @pytest.mark.asyncio
    async def test_stopped_template_is_not_backfilled(self, entry_flow, storage, today):
        storage.transactions["tpl-1"] = make_template()
        state = LedgerState(transactions=[storage.transactions["tpl-1"]])

        await entry_flow.stop_recurrence(state, "tpl-1")
        result = await LedgerSession(storage).load(today)

        assert result.created == []

    @pytest.mark.asyncio
    async def test_unknown_template(self, entry_flow):
        with pytest.raises(NotFoundError):
            await entry_flow.stop_recurrence(LedgerState(), "missing")

    @pytest.mark.asyncio
    async def test_plain_transaction_cannot_be_stopped(self, entry_flow):
        state = LedgerState(transactions=[
            make_transaction("Coffee", date(2024, 3, 1), id="a"),
        ])
        with pytest.raises(NotFoundError):
            await entry_flow.stop_recurrence(state, "a")


class TestAssistantHooks:
    """The entry flow degrades gracefully without an assistant."""

    @pytest.mark.asyncio
    async def test_no_assistant_no_suggestion(self, entry_flow):
        assert not entry_flow.has_assistant
        assert await entry_flow.suggest_category("Pizza", TransactionKind.EXPENSE) is None

    @pytest.mark.asyncio
    async def test_suggestion_delegates_to_assistant(self, storage, app_settings):
        assistant = MagicMock()
        assistant.predict_category = AsyncMock(return_value=Category.FOOD)
        flow = TransactionEntryFlow(
            storage,
            validator=TransactionValidator(app_settings),
            assistant=assistant,
        )

        assert await flow.suggest_category("Pizza", TransactionKind.EXPENSE) == Category.FOOD
        assistant.predict_category.assert_awaited_once_with("Pizza", TransactionKind.EXPENSE)

    @pytest.mark.asyncio
    async def test_unreadable_receipt(self, entry_flow):
        assert await entry_flow.read_receipt(b"not an image") == (None, None)

    @pytest.mark.asyncio
    async def test_receipt_over_upload_limit_rejected(self, storage, app_settings):
        buffer = io.BytesIO()
        Image.new("RGB", (40, 60), "white").save(buffer, format="PNG")
        image_bytes = buffer.getvalue()
        assistant = MagicMock()
        assistant.analyze_receipt = AsyncMock()

        def flow(limit):
            return TransactionEntryFlow(
                storage,
                validator=TransactionValidator(app_settings),
                assistant=assistant,
                max_upload_bytes=limit,
            )

        assert await flow(len(image_bytes) - 1).read_receipt(image_bytes) == (None, None)
        assistant.analyze_receipt.assert_not_called()

        _, data_url = await flow(len(image_bytes)).read_receipt(image_bytes)
        assert data_url.startswith("data:image/jpeg;base64,")

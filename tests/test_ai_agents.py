"""Tests for the Gemini assistant (the model is mocked)."""

import io
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from conftest import make_template, make_transaction
from financeflow.agents import FinanceAssistant, load_receipt_image, receipt_data_url
from financeflow.agents.ai_agents import ADVICE_FALLBACK, CHAT_FALLBACK
from financeflow.config import GeminiSettings
from financeflow.models import (
    AuditEventType,
    Bill,
    Category,
    MarketSentiment,
    TransactionKind,
    TrendDirection,
)


def _png_bytes(size=(40, 60)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, (255, 255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def model():
    mock = MagicMock()
    mock.generate_content_async = AsyncMock(return_value=MagicMock(text=""))
    return mock


@pytest.fixture
def assistant(model) -> FinanceAssistant:
    return FinanceAssistant(settings=GeminiSettings(api_key="test-key"), model=model)


def _reply(model, text: str):
    model.generate_content_async.return_value = MagicMock(text=text)


class TestReceiptImage:

    def test_load_converts_to_rgb(self):
        image = load_receipt_image(_png_bytes())
        assert image.mode == "RGB"

    def test_load_downscales_large_images(self):
        image = load_receipt_image(_png_bytes((4000, 2000)))
        assert max(image.size) == 1600

    def test_load_rejects_garbage(self):
        with pytest.raises(ValueError):
            load_receipt_image(b"definitely not an image")

    def test_data_url(self):
        url = receipt_data_url(load_receipt_image(_png_bytes()))
        assert url.startswith("data:image/jpeg;base64,")


class TestPredictCategory:

    @pytest.mark.asyncio
    async def test_valid_answer(self, assistant, model):
        _reply(model, "Food.")

        assert await assistant.predict_category("Pizza night") == Category.FOOD

    @pytest.mark.asyncio
    async def test_answer_must_fit_kind(self, assistant, model):
        _reply(model, "salary")

        assert await assistant.predict_category("Pizza", TransactionKind.EXPENSE) is None

    @pytest.mark.asyncio
    async def test_income_category(self, assistant, model):
        _reply(model, "salary")

        result = await assistant.predict_category("March pay", TransactionKind.INCOME)
        assert result == Category.SALARY

    @pytest.mark.asyncio
    async def test_blank_description_skips_model(self, assistant, model):
        assert await assistant.predict_category("   ") is None
        model.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_model_failure_returns_none(self, assistant, model):
        model.generate_content_async.side_effect = RuntimeError("quota exceeded")

        assert await assistant.predict_category("Pizza") is None

    @pytest.mark.asyncio
    async def test_model_failure_is_audited(self, model, audit_logger, audit_storage):
        assistant = FinanceAssistant(
            settings=GeminiSettings(api_key="test-key"),
            model=model,
            audit_logger=audit_logger,
        )
        model.generate_content_async.side_effect = RuntimeError("quota exceeded")

        await assistant.predict_category("Pizza")

        (event,) = audit_storage.events
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.details["service"] == "gemini"
        assert event.error_message == "quota exceeded"


class TestAnalyzeReceipt:

    @pytest.mark.asyncio
    async def test_extracts_fields(self, assistant, model):
        _reply(model, """Here you go:
```json
{"amount": -23.456, "date": "2024-03-02", "description": "Esselunga",
 "category": "food", "subcategory": "pasta"}
```""")

        extraction = await assistant.analyze_receipt(_png_bytes())

        assert extraction.amount == Decimal("23.46")
        assert extraction.occurred_on == date(2024, 3, 2)
        assert extraction.description == "Esselunga"
        assert extraction.category == Category.FOOD
        assert extraction.subcategory == "pasta"

    @pytest.mark.asyncio
    async def test_bad_fields_are_dropped(self, assistant, model):
        _reply(model, '{"amount": "n/a", "date": "yesterday", "category": "salary"}')

        extraction = await assistant.analyze_receipt(_png_bytes())

        assert extraction.amount is None
        assert extraction.occurred_on is None
        assert extraction.category is None

    @pytest.mark.parametrize("answer", [
        '{"amount": 5, "date": "2024-03-02", "description": "Bar", "subcategory": 7}',
        '{"amount": 5, "description": "' + "x" * 600 + '"}',
    ])
    @pytest.mark.asyncio
    async def test_malformed_fields_degrade_to_none(self, assistant, model, answer):
        _reply(model, answer)

        assert await assistant.analyze_receipt(_png_bytes()) is None

    @pytest.mark.asyncio
    async def test_non_json_answer(self, assistant, model):
        _reply(model, "I can't read this receipt.")

        assert await assistant.analyze_receipt(_png_bytes()) is None

    @pytest.mark.asyncio
    async def test_unreadable_image_skips_model(self, assistant, model):
        assert await assistant.analyze_receipt(b"garbage") is None
        model.generate_content_async.assert_not_called()


class TestAdvice:

    @pytest.mark.asyncio
    async def test_no_transactions(self, assistant, model):
        advice = await assistant.get_financial_advice([], limit=10)

        assert advice.startswith("Add a few transactions")
        model.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_templates_not_sent(self, assistant, model):
        _reply(model, "Cook at home more.")
        transactions = [
            make_template(description="Netflix"),
            make_transaction("Pizza", date(2024, 3, 1)),
        ]

        advice = await assistant.get_financial_advice(transactions, limit=10)

        assert advice == "Cook at home more."
        prompt = model.generate_content_async.call_args.args[0]
        assert '"cat": "food"' in prompt
        assert "housing" not in prompt

    @pytest.mark.asyncio
    async def test_failure_falls_back(self, assistant, model):
        model.generate_content_async.side_effect = RuntimeError("boom")

        advice = await assistant.get_financial_advice(
            [make_transaction("Pizza", date(2024, 3, 1))], limit=10
        )

        assert advice == ADVICE_FALLBACK


class TestMarketAnalysis:

    @pytest.mark.asyncio
    async def test_parses_report(self, assistant, model):
        _reply(model, """{"sentiment": "Bullish", "score": 72,
            "summary": "Rates are easing.",
            "trends": [{"sector": "AI", "trend": "up", "change": 2.1, "reason": "Capex"}]}""")

        analysis = await assistant.get_market_analysis()

        assert analysis.sentiment == MarketSentiment.BULLISH
        assert analysis.score == 72
        assert analysis.trends[0].trend == TrendDirection.UP

    @pytest.mark.asyncio
    async def test_out_of_range_score_rejected(self, assistant, model):
        _reply(model, '{"sentiment": "Neutral", "score": 250}')

        assert await assistant.get_market_analysis() is None


class TestChat:

    @pytest.mark.asyncio
    async def test_chat_grounded_on_ledger(self, assistant, model):
        session = MagicMock()
        session.send_message_async = AsyncMock(return_value=MagicMock(text=" 42 EUR "))
        model.start_chat.return_value = session
        bills = [Bill(id="b", name="Gas", amount=Decimal("30"), due_date=date(2024, 3, 15))]

        chat = assistant.start_chat(
            [make_transaction("Pizza", date(2024, 3, 1), amount="12")],
            bills,
            date(2024, 3, 10),
        )
        reply = await chat.send("How much did I spend?")

        assert reply == "42 EUR"
        history = model.start_chat.call_args.kwargs["history"]
        context = history[0]["parts"][0]
        assert "Balance: -12" in context
        assert "Gas" in context

    @pytest.mark.asyncio
    async def test_chat_failure_falls_back(self, assistant, model):
        session = MagicMock()
        session.send_message_async = AsyncMock(side_effect=RuntimeError("offline"))
        model.start_chat.return_value = session

        chat = assistant.start_chat([], [], date(2024, 3, 10))

        assert await chat.send("hi") == CHAT_FALLBACK

    @pytest.mark.asyncio
    async def test_chat_failure_is_audited(self, model, audit_logger, audit_storage):
        session = MagicMock()
        session.send_message_async = AsyncMock(side_effect=RuntimeError("offline"))
        model.start_chat.return_value = session
        assistant = FinanceAssistant(
            settings=GeminiSettings(api_key="test-key"),
            model=model,
            audit_logger=audit_logger,
        )

        await assistant.start_chat([], [], date(2024, 3, 10)).send("hi")

        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.EXTERNAL_SERVICE_ERROR,
        ]

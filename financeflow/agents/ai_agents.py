"""
AI Assistant for FinanceFlow

Gemini-backed helpers used by the entry form, the dashboard and the chat.

CRITICAL BOUNDARIES:

1. CATEGORY PREDICTION / RECEIPT READING:
   - CAN: Suggest a category, prefill the entry form from a photo
   - CANNOT: Persist anything; the user confirms every suggestion
   - CANNOT: Pick a category outside the kind's allowed set

2. ADVICE / CHAT:
   - CAN: Comment on the user's actual transactions and bills
   - MUST: Only reason over the summary it is given

Every call degrades gracefully: a missing key or a failed request
returns None or a fallback message and is logged, never raised.
"""

import base64
import io
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import google.generativeai as genai
import structlog
from PIL import Image, UnidentifiedImageError

from financeflow.audit import AuditLogger
from financeflow.config import GeminiSettings, get_settings
from financeflow.models.transaction import (
    EXPENSE_CATEGORIES,
    Bill,
    Category,
    MarketAnalysis,
    ReceiptExtraction,
    Transaction,
    TransactionKind,
    categories_for,
)


logger = structlog.get_logger()

ADVICE_FALLBACK = "I couldn't generate advice right now. Please try again later."
CHAT_FALLBACK = "Sorry, I can't reach the assistant right now."

# Longest side of a receipt image sent to the model or stored
RECEIPT_MAX_SIDE = 1600


def _extract_json(text: str) -> Optional[dict]:
    """Pull the first JSON object out of a model response."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(text[start:end])
    except json.JSONDecodeError:
        return None


def _match_category(value: Any, allowed: Iterable[Category]) -> Optional[Category]:
    """Map a model answer onto one of the allowed categories."""
    if not value:
        return None
    cleaned = str(value).strip().strip(".\"'").lower()
    for category in allowed:
        if cleaned in (category.value, category.name.lower(), category.label.lower()):
            return category
    return None


def load_receipt_image(image_bytes: bytes) -> Image.Image:
    """
    Open and downscale a receipt photo.

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Not a readable image: {e}")

    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.thumbnail((RECEIPT_MAX_SIDE, RECEIPT_MAX_SIDE))
    return image


def receipt_data_url(image: Image.Image, quality: int = 80) -> str:
    """Encode an image as a JPEG data URL for the receipt_image column."""
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def summarize_for_prompt(
    transactions: Iterable[Transaction],
    limit: int,
) -> list[dict]:
    """Compact, newest-first view of realized transactions for a prompt."""
    realized = sorted(
        (t for t in transactions if not t.is_template),
        key=lambda t: t.occurred_on,
        reverse=True,
    )
    return [
        {
            "date": t.occurred_on.isoformat(),
            "amount": str(t.amount),
            "type": t.kind.value,
            "cat": t.category.value,
            "sub": t.subcategory,
        }
        for t in realized[:limit]
    ]


async def _audit_gemini_failure(
    audit_logger: Optional[AuditLogger],
    error: Exception,
) -> None:
    if audit_logger:
        await audit_logger.log_external_service_error(
            service="gemini",
            error_message=str(error),
        )


class FinanceAssistant:
    """
    Gemini assistant.

    RESPONSIBILITIES:
    - Predict a category from a description
    - Read amount/date/vendor/category from a receipt photo
    - Give short saving tips from recent transactions
    - Produce a general market outlook

    BOUNDARIES:
    - NEVER persists data
    - ALWAYS defers to user for confirmation
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model
        self._audit_logger = audit_logger
        if self._model is None:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def _generate(self, contents: Any) -> Optional[str]:
        try:
            response = await self._model.generate_content_async(contents)
            return (response.text or "").strip()
        except Exception as e:
            logger.error("gemini_request_failed", error=str(e))
            await _audit_gemini_failure(self._audit_logger, e)
            return None

    async def predict_category(
        self,
        description: str,
        kind: TransactionKind = TransactionKind.EXPENSE,
    ) -> Optional[Category]:
        """
        Suggest a category for a transaction description.

        Returns None when the model is unavailable or answers with
        something outside the kind's categories.
        """
        if not description.strip():
            return None

        allowed = categories_for(kind)
        prompt = f"""Categorize the {kind.value.lower()} "{description}" for a personal finance app.

Choose EXACTLY one of these categories: {', '.join(c.value for c in allowed)}

Answer with ONLY the category name, no punctuation."""

        text = await self._generate(prompt)
        if text is None:
            return None

        category = _match_category(text.splitlines()[0] if text else "", allowed)
        if category is None:
            logger.warning("category_prediction_rejected", answer=text[:50])
        return category

    async def analyze_receipt(self, image_bytes: bytes) -> Optional[ReceiptExtraction]:
        """
        Read a receipt photo.

        Returns PROPOSED values for the entry form, or None.
        """
        try:
            image = load_receipt_image(image_bytes)
        except ValueError as e:
            logger.warning("receipt_unreadable", error=str(e))
            return None

        prompt = f"""Analyze this receipt and extract:
1. Total amount paid (amount, a number)
2. Date (date, ISO YYYY-MM-DD)
3. Vendor name (description)
4. Category, strictly one of: {', '.join(c.value for c in EXPENSE_CATEGORIES)}
5. Subcategory (e.g. pasta, meat, electricity) or null

Respond with ONLY a JSON object in this exact format:
{{"amount": 12.5, "date": "2024-03-01", "description": "vendor", "category": "food", "subcategory": null}}"""

        text = await self._generate([prompt, image])
        if not text:
            return None

        data = _extract_json(text)
        if data is None:
            logger.warning("receipt_response_not_json", response=text[:100])
            return None

        return self._parse_receipt(data)

    @staticmethod
    def _parse_receipt(data: dict) -> Optional[ReceiptExtraction]:
        amount = None
        try:
            if data.get("amount") is not None:
                amount = abs(Decimal(str(data["amount"]))).quantize(Decimal("0.01"))
        except InvalidOperation:
            amount = None

        occurred_on = None
        try:
            if data.get("date"):
                occurred_on = date.fromisoformat(str(data["date"])[:10])
        except ValueError:
            occurred_on = None

        try:
            return ReceiptExtraction(
                amount=amount,
                occurred_on=occurred_on,
                description=(data.get("description") or None),
                category=_match_category(data.get("category"), EXPENSE_CATEGORIES),
                subcategory=(data.get("subcategory") or None),
            )
        except ValueError as e:
            logger.warning("receipt_response_invalid", error=str(e))
            return None

    async def get_financial_advice(
        self,
        transactions: Iterable[Transaction],
        limit: Optional[int] = None,
    ) -> str:
        """Three short saving tips based on the most recent transactions."""
        limit = limit or get_settings().app.advice_transaction_limit
        summary = summarize_for_prompt(transactions, limit)
        if not summary:
            return "Add a few transactions first and I'll have some tips for you."

        prompt = f"""You are a friendly financial advisor. Analyze these transactions (up to {limit} most recent).
Give 3 short tips (max 2 sentences each) on how to save money, pointing out
negative trends or unnecessary recurring expenses. Use an encouraging tone.

Data: {json.dumps(summary)}"""

        text = await self._generate(prompt)
        return text or ADVICE_FALLBACK

    async def get_market_analysis(self) -> Optional[MarketAnalysis]:
        """General market outlook (sentiment, score, summary, sector trends)."""
        prompt = """Act as a senior market analyst. Write a short, realistic report on the current global markets.
Provide:
1. Overall sentiment (Bullish, Bearish, Neutral)
2. A score from 0 to 100 (100 = maximum growth/euphoria)
3. A two-sentence summary of the macroeconomic situation
4. 3 sectors to watch with trend (up/down/neutral), percentage change and reason

Respond with ONLY a JSON object in this exact format:
{"sentiment": "Neutral", "score": 50, "summary": "...", "trends": [{"sector": "AI", "trend": "up", "change": 1.5, "reason": "..."}]}"""

        text = await self._generate(prompt)
        if not text:
            return None

        data = _extract_json(text)
        if data is None:
            return None
        try:
            return MarketAnalysis.model_validate(data)
        except ValueError as e:
            logger.warning("market_analysis_invalid", error=str(e))
            return None

    def start_chat(
        self,
        transactions: Iterable[Transaction],
        bills: Iterable[Bill],
        today: date,
    ) -> 'FinancialChat':
        """Open a chat session grounded on the current ledger."""
        return FinancialChat(
            self._model,
            transactions,
            bills,
            today,
            audit_logger=self._audit_logger,
        )


class FinancialChat:
    """
    Multi-turn chat about the user's finances.

    The first turn carries a summary of the ledger; the model is told
    to answer only from it.
    """

    def __init__(
        self,
        model: Any,
        transactions: Iterable[Transaction],
        bills: Iterable[Bill],
        today: date,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit_logger = audit_logger
        transactions = list(transactions)
        realized = [t for t in transactions if not t.is_template and t.occurred_on <= today]
        balance = sum((t.signed_amount for t in realized), Decimal("0"))
        unpaid = [
            {"name": b.name, "amount": str(b.amount), "due": b.due_date.isoformat()}
            for b in bills
            if not b.is_paid
        ]
        recurring = [
            {
                "description": t.description,
                "amount": str(t.amount),
                "frequency": t.frequency.value if t.frequency else None,
            }
            for t in transactions
            if t.is_template and t.next_due is not None
        ]

        context = f"""You are the assistant of a personal finance app. Today is {today.isoformat()}.
Answer briefly and only from the data below. If the data doesn't answer the question, say so.

Balance: {balance}
Recent transactions: {json.dumps(summarize_for_prompt(realized, 50))}
Recurring: {json.dumps(recurring)}
Unpaid bills: {json.dumps(unpaid)}"""

        self._session = model.start_chat(history=[
            {"role": "user", "parts": [context]},
            {"role": "model", "parts": ["Got it. How can I help with your finances?"]},
        ])

    async def send(self, message: str) -> str:
        """Send a user message and return the reply."""
        try:
            response = await self._session.send_message_async(message)
            return (response.text or "").strip() or CHAT_FALLBACK
        except Exception as e:
            logger.error("gemini_chat_failed", error=str(e))
            await _audit_gemini_failure(self._audit_logger, e)
            return CHAT_FALLBACK

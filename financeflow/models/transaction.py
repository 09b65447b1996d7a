"""
Core Data Models for FinanceFlow

These models define the schemas for all ledger data flowing through the system:
transactions (plain entries, recurrence templates and their generated
occurrences), bills, and the session state that holds them.

DESIGN DECISION: We use Pydantic v2 models for every entity.
Invariants that must never be broken (a plain transaction never carries
recurrence fields, amounts are never negative) are enforced at
construction time rather than checked ad hoc by callers.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of money flow."""
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class Frequency(str, Enum):
    """How often a recurring template generates an occurrence."""
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Category(str, Enum):
    """
    Supported transaction categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent grouping on the dashboard and in analytics.
    Which categories are valid depends on the transaction kind,
    see EXPENSE_CATEGORIES and INCOME_CATEGORIES.
    """
    FOOD = "food"
    HOUSING = "housing"
    TRANSPORT = "transport"
    LEISURE = "leisure"
    HEALTH = "health"
    SHOPPING = "shopping"
    EDUCATION = "education"
    INVESTMENT = "investment"
    SALARY = "salary"
    BONUS = "bonus"
    REFUND = "refund"
    OTHER = "other"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


EXPENSE_CATEGORIES: tuple[Category, ...] = (
    Category.FOOD,
    Category.HOUSING,
    Category.TRANSPORT,
    Category.LEISURE,
    Category.HEALTH,
    Category.SHOPPING,
    Category.EDUCATION,
    Category.INVESTMENT,
    Category.OTHER,
)

INCOME_CATEGORIES: tuple[Category, ...] = (
    Category.SALARY,
    Category.BONUS,
    Category.INVESTMENT,
    Category.REFUND,
    Category.OTHER,
)


def categories_for(kind: TransactionKind) -> tuple[Category, ...]:
    """Categories a transaction of the given kind may use."""
    if kind == TransactionKind.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class Transaction(BaseModel):
    """
    A financial event, or a recurrence template.

    Three shapes share this model:
    - a plain transaction entered by the user;
    - a template (`is_template=True`) describing a recurring charge,
      carrying `frequency` and the `next_due` cursor;
    - an occurrence generated from a template, which is a plain
      transaction linked back through `template_id`.

    A template is never itself a realized financial event.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity (assigned by storage)
    id: Optional[str] = Field(
        default=None,
        description="Opaque identifier assigned by storage on creation"
    )

    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative amount"
    )
    kind: TransactionKind = Field(
        ...,
        description="Expense or income"
    )
    category: Category = Field(
        default=Category.OTHER,
        description="Category, drawn from the set allowed for the kind"
    )
    subcategory: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Free-form subcategory"
    )
    occurred_on: date = Field(
        ...,
        description="Calendar day the transaction is considered to have happened"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Free text; part of the duplicate-detection identity"
    )

    # Recurrence
    is_template: bool = Field(
        default=False,
        description="True when this row is a recurrence template"
    )
    frequency: Optional[Frequency] = Field(
        default=None,
        description="Recurrence frequency (templates only)"
    )
    next_due: Optional[date] = Field(
        default=None,
        description="Next date this template should generate an occurrence (templates only)"
    )
    template_id: Optional[str] = Field(
        default=None,
        description="Template this occurrence was generated from"
    )

    # Attachments
    receipt_image: Optional[str] = Field(
        default=None,
        description="Base64 data URL of the scanned receipt"
    )

    @model_validator(mode='after')
    def validate_recurrence_fields(self) -> 'Transaction':
        """Only templates may carry recurrence fields."""
        if not self.is_template:
            if self.frequency is not None:
                raise ValueError("Only recurring templates can have a frequency")
            if self.next_due is not None:
                raise ValueError("Only recurring templates can have a next due date")
        elif self.template_id is not None:
            raise ValueError("A recurring template cannot be linked to another template")
        return self

    @property
    def signed_amount(self) -> Decimal:
        """Amount with sign: positive for income, negative for expenses."""
        if self.kind == TransactionKind.INCOME:
            return self.amount
        return -self.amount

    @property
    def is_due_template(self) -> bool:
        """A template that still has a cursor (not stopped)."""
        return self.is_template and self.next_due is not None

    def make_occurrence(self, on: date) -> 'Transaction':
        """
        Build a non-template occurrence of this template dated `on`.

        The occurrence inherits amount, kind, category, subcategory
        and description, and links back through `template_id`.
        """
        if not self.is_template:
            raise ValueError("Occurrences can only be generated from templates")
        return Transaction(
            amount=self.amount,
            kind=self.kind,
            category=self.category,
            subcategory=self.subcategory,
            occurred_on=on,
            description=self.description,
            template_id=self.id,
        )


class TransactionDraft(BaseModel):
    """
    User-entered transaction before validation and persistence.

    This is PROPOSED data; the entry flow validates it and turns it
    into a `Transaction` (a template when `is_recurring` is set).
    Amount is deliberately unconstrained so the validator can
    report a friendly message instead of a schema error.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal
    kind: TransactionKind = TransactionKind.EXPENSE
    category: Category = Category.OTHER
    subcategory: Optional[str] = None
    occurred_on: date
    description: str = ""
    is_recurring: bool = False
    frequency: Optional[Frequency] = None
    next_due: Optional[date] = None
    receipt_image: Optional[str] = None

    def to_transaction(self) -> Transaction:
        """Convert into the model that will be persisted."""
        if self.is_recurring:
            return Transaction(
                amount=self.amount,
                kind=self.kind,
                category=self.category,
                subcategory=self.subcategory,
                occurred_on=self.occurred_on,
                description=self.description,
                is_template=True,
                frequency=self.frequency,
                next_due=self.next_due or self.occurred_on,
                receipt_image=self.receipt_image,
            )
        return Transaction(
            amount=self.amount,
            kind=self.kind,
            category=self.category,
            subcategory=self.subcategory,
            occurred_on=self.occurred_on,
            description=self.description,
            receipt_image=self.receipt_image,
        )


# =============================================================================
# BILL MODELS
# =============================================================================

class Bill(BaseModel):
    """
    A scheduled obligation.

    `is_paid` moves from False to True exactly once; paying an
    already-paid bill is a no-op.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Opaque identifier assigned by storage on creation"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Bill name, e.g. the provider"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount due"
    )
    due_date: date = Field(
        ...,
        description="Payment due date"
    )
    category: Category = Field(
        default=Category.HOUSING,
        description="Expense category the payment is booked under"
    )
    is_paid: bool = Field(
        default=False,
        description="Has the bill been paid"
    )
    attachment: Optional[str] = Field(
        default=None,
        description="Base64 data URL of the bill document"
    )

    def days_until_due(self, today: date) -> int:
        """Negative when the bill is overdue."""
        return (self.due_date - today).days


class BillDraft(BaseModel):
    """User-entered bill before validation and persistence."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    amount: Decimal
    due_date: date
    category: Category = Category.HOUSING
    attachment: Optional[str] = None

    def to_bill(self) -> Bill:
        return Bill(
            name=self.name,
            amount=self.amount,
            due_date=self.due_date,
            category=self.category,
            attachment=self.attachment,
        )


# =============================================================================
# AI RESULT MODELS
# =============================================================================

class ReceiptExtraction(BaseModel):
    """
    Data read from a receipt photo by the assistant.

    CRITICAL: This is PROPOSED data, NOT verified.
    It prefills the entry form; the user confirms before anything is saved.
    """

    amount: Optional[Decimal] = Field(default=None, ge=0)
    occurred_on: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[Category] = None
    subcategory: Optional[str] = None


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class MarketSentiment(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"


class MarketTrend(BaseModel):
    """One sector in the market outlook."""

    sector: str
    trend: TrendDirection = TrendDirection.NEUTRAL
    change: float = Field(default=0.0, description="Percentage change")
    reason: str = ""


class MarketAnalysis(BaseModel):
    """General market outlook generated by the assistant."""

    sentiment: MarketSentiment = MarketSentiment.NEUTRAL
    score: int = Field(default=50, ge=0, le=100)
    summary: str = ""
    trends: list[MarketTrend] = Field(default_factory=list)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Outcome of validating a user-entered draft."""

    is_valid: bool = Field(
        ...,
        description="False if any issue has error severity"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

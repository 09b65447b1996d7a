"""
Data Models Package

This package contains all Pydantic models used in FinanceFlow.
All data flowing through the system must conform to these schemas.
"""

from financeflow.models.transaction import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    Bill,
    BillDraft,
    Category,
    Frequency,
    MarketAnalysis,
    MarketSentiment,
    MarketTrend,
    ReceiptExtraction,
    Transaction,
    TransactionDraft,
    TransactionKind,
    TrendDirection,
    ValidationIssue,
    ValidationResult,
    categories_for,
)
from financeflow.models.state import LedgerState
from financeflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "Bill",
    "BillDraft",
    "Category",
    "Frequency",
    "LedgerState",
    "MarketAnalysis",
    "MarketSentiment",
    "MarketTrend",
    "ReceiptExtraction",
    "Transaction",
    "TransactionDraft",
    "TransactionKind",
    "TrendDirection",
    "ValidationIssue",
    "ValidationResult",
    "categories_for",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

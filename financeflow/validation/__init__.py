"""Validation of user-entered transactions and bills."""

from financeflow.validation.validator import (
    TransactionValidator,
    ValidationFailedError,
)

__all__ = ["TransactionValidator", "ValidationFailedError"]

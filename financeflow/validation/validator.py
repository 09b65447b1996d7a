"""
Two-Stage Validation for User-Entered Data

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, description, bill name)
- Recurring drafts must say how often they recur

STAGE 2 - SEMANTIC VALIDATION:
- Category must belong to the kind (no "salary" expense)
- Absurd amount detection
- Far-future date detection
- Likely duplicate entry detection

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and the entry form shows them to the user.
Errors block saving; warnings don't.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from financeflow.config import AppSettings, get_settings
from financeflow.models.transaction import (
    EXPENSE_CATEGORIES,
    BillDraft,
    Transaction,
    TransactionDraft,
    ValidationIssue,
    ValidationResult,
    categories_for,
)


def _result(issues: list[ValidationIssue]) -> ValidationResult:
    return ValidationResult(
        is_valid=not any(issue.severity == "error" for issue in issues),
        issues=issues,
    )


class TransactionValidator:
    """
    Validates transaction and bill drafts before they are persisted.

    Stage 2 only runs when stage 1 passes.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _validate_transaction_schema(
        self,
        draft: TransactionDraft,
    ) -> list[ValidationIssue]:
        issues = []

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount without a sign",
            ))

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))

        if draft.is_recurring and draft.frequency is None:
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="missing",
                message="Recurring transactions need a frequency",
                severity="error",
                suggested_fix="Choose weekly, monthly or yearly",
            ))

        if not draft.is_recurring and draft.frequency is not None:
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="inconsistent",
                message="Frequency is ignored for one-off transactions",
                severity="warning",
            ))

        return issues

    def _validate_transaction_semantic(
        self,
        draft: TransactionDraft,
        today: date,
        existing: Iterable[Transaction],
    ) -> list[ValidationIssue]:
        issues = []

        allowed = categories_for(draft.kind)
        if draft.category not in allowed:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=(
                    f"Category '{draft.category.value}' is not valid for "
                    f"{draft.kind.value.lower()} transactions"
                ),
                severity="error",
                suggested_fix=f"Use one of: {', '.join(c.value for c in allowed)}",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if draft.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        start = draft.next_due or draft.occurred_on
        if start > max_future:
            issues.append(ValidationIssue(
                field="occurred_on",
                issue_type="future_date",
                message=f"Date ({start}) is far in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if draft.is_recurring and draft.next_due and draft.next_due < draft.occurred_on:
            issues.append(ValidationIssue(
                field="next_due",
                issue_type="inconsistent",
                message="First due date is before the transaction date",
                severity="warning",
            ))

        if not draft.is_recurring:
            for t in existing:
                if (
                    not t.is_template
                    and t.description == draft.description
                    and t.occurred_on == draft.occurred_on
                    and t.amount == draft.amount
                ):
                    issues.append(ValidationIssue(
                        field="duplicate",
                        issue_type="potential_duplicate",
                        message=(
                            f"'{draft.description}' on {draft.occurred_on} "
                            "may already be recorded"
                        ),
                        severity="warning",
                        suggested_fix="Please verify this isn't a duplicate entry",
                    ))
                    break

        return issues

    def validate_transaction(
        self,
        draft: TransactionDraft,
        today: date,
        existing: Iterable[Transaction] = (),
    ) -> ValidationResult:
        """
        Validate a transaction draft.

        Args:
            draft: What the user entered
            today: Reference day for date checks
            existing: Known transactions, for duplicate warnings

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_transaction_schema(draft)
        if not any(i.severity == "error" for i in issues):
            issues.extend(self._validate_transaction_semantic(draft, today, existing))
        return _result(issues)

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    def validate_bill(self, draft: BillDraft, today: date) -> ValidationResult:
        """Validate a bill draft."""
        issues = []

        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Bill name is required",
                severity="error",
            ))

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if draft.category not in EXPENSE_CATEGORIES:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"Category '{draft.category.value}' is not an expense category",
                severity="error",
            ))

        if draft.due_date < today:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="past_date",
                message=f"Due date ({draft.due_date}) has already passed",
                severity="warning",
            ))

        return _result(issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []
        if result.errors:
            lines.append("❌ Please fix the following:")
            for issue in result.errors:
                lines.append(f"  • {issue.message}")
        if result.warnings:
            lines.append("⚠️ Please double-check:")
            for issue in result.warnings:
                lines.append(f"  • {issue.message}")
        return "\n".join(lines)


class ValidationFailedError(ValueError):
    """A draft did not pass validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Validation failed: {messages}")

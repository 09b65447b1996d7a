"""Recurring transactions: date stepping and the backfill engine."""

from financeflow.recurrence.backfill import (
    BackfillResult,
    OccurrenceIndex,
    TemplateBackfill,
    apply_template_results,
    backfill_template,
    plan_occurrences,
    run_backfill,
    select_due_templates,
)
from financeflow.recurrence.dates import next_occurrence, occurrence_dates

__all__ = [
    "BackfillResult",
    "OccurrenceIndex",
    "TemplateBackfill",
    "apply_template_results",
    "backfill_template",
    "next_occurrence",
    "occurrence_dates",
    "plan_occurrences",
    "run_backfill",
    "select_due_templates",
]

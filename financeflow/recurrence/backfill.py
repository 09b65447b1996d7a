"""
Recurrence Backfill Engine

Materializes every missing occurrence of the recurring templates up to
"today" and advances each template's next_due cursor past today.

ALGORITHM (per due template):
1. cursor = template.next_due
2. while cursor <= today:
   - skip if an occurrence for (template, cursor) already exists
   - otherwise plan a new occurrence dated cursor
   - stop after one step if the template has no frequency
   - cursor = next_occurrence(cursor, frequency)
3. write the planned occurrences in one bulk insert
4. persist next_due = cursor, even when nothing was created

GUARANTEES:
- Idempotent: a second run with the same "today" creates nothing,
  because every occurrence of the first run is found by the duplicate check.
- Monotonic: next_due only moves forward.
- Resumable: if a run dies between step 3 and step 4, the next run starts
  from the old cursor and skips what was already written.
- Partial-failure tolerant: a failed write is logged and the engine moves
  on to the next template. Nothing is rolled back and the failed template's
  cursor stays where it was, so it is retried on the next run.

"today" is always passed in; the engine never reads the clock.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from financeflow.audit import AuditLogger, create_correlation_id
from financeflow.models.state import LedgerState
from financeflow.models.transaction import Transaction
from financeflow.recurrence.dates import next_occurrence
from financeflow.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger()


# =============================================================================
# DUPLICATE DETECTION
# =============================================================================

class OccurrenceIndex:
    """
    Answers "does an occurrence of this template on this day already exist?"

    Two keys are checked:
    - (template_id, day): the explicit link written on every occurrence
      this engine creates
    - (description, day): exact, case-sensitive match, kept for rows
      created before occurrences carried a template link. This is a
      best-effort heuristic: renaming a template defeats it.

    Templates themselves are never counted as occurrences.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._linked: set[tuple[str, date]] = set()
        self._described: set[tuple[str, date]] = set()
        for t in transactions:
            self.add(t)

    def add(self, transaction: Transaction) -> None:
        if transaction.is_template:
            return
        if transaction.template_id:
            self._linked.add((transaction.template_id, transaction.occurred_on))
        self._described.add((transaction.description, transaction.occurred_on))

    def contains(self, template: Transaction, on: date) -> bool:
        if template.id and (template.id, on) in self._linked:
            return True
        return (template.description, on) in self._described


# =============================================================================
# RESULTS
# =============================================================================

class TemplateBackfill(BaseModel):
    """Outcome of backfilling a single template."""

    template: Transaction = Field(
        ...,
        description="The template, with next_due as persisted after this run"
    )
    planned: list[date] = Field(
        default_factory=list,
        description="Occurrence dates that were missing"
    )
    created: list[Transaction] = Field(
        default_factory=list,
        description="Occurrences written to storage"
    )
    next_due: date = Field(
        ...,
        description="Final cursor computed for the template"
    )
    advanced: bool = Field(
        default=False,
        description="Was next_due persisted"
    )
    error: Optional[str] = Field(
        default=None,
        description="Storage error that interrupted this template"
    )


class BackfillResult(BaseModel):
    """Outcome of a full backfill run."""

    state: LedgerState
    templates: list[TemplateBackfill] = Field(default_factory=list)
    refreshed: bool = Field(
        default=False,
        description="Was the transaction list re-read from storage"
    )

    @property
    def created(self) -> list[Transaction]:
        return [tx for t in self.templates for tx in t.created]

    @property
    def advanced(self) -> dict[str, date]:
        return {
            t.template.id: t.next_due
            for t in self.templates
            if t.advanced
        }

    @property
    def failures(self) -> dict[str, str]:
        return {
            t.template.id: t.error
            for t in self.templates
            if t.error
        }


# =============================================================================
# ENGINE
# =============================================================================

def select_due_templates(
    transactions: Iterable[Transaction],
    today: date,
) -> list[Transaction]:
    """Persisted templates whose next_due is on or before today."""
    return [
        t for t in transactions
        if t.is_template
        and t.id is not None
        and t.next_due is not None
        and t.next_due <= today
    ]


def plan_occurrences(
    template: Transaction,
    index: OccurrenceIndex,
    today: date,
) -> tuple[list[Transaction], date]:
    """
    Work out which occurrences are missing, without touching storage.

    Returns:
        (occurrences_to_create, final_cursor)
    """
    cursor = template.next_due
    planned: list[Transaction] = []
    planned_days: set[date] = set()

    while cursor <= today:
        if cursor not in planned_days and not index.contains(template, cursor):
            planned.append(template.make_occurrence(cursor))
            planned_days.add(cursor)
        if template.frequency is None:
            break
        cursor = next_occurrence(cursor, template.frequency)

    return planned, cursor


async def backfill_template(
    template: Transaction,
    index: OccurrenceIndex,
    storage: LedgerStorageInterface,
    today: date,
    audit_logger: Optional[AuditLogger] = None,
    correlation_id: Optional[UUID] = None,
) -> TemplateBackfill:
    """
    Backfill one template.

    Created occurrences are added to `index` so later templates in the
    same run see them.
    """
    log = logger.bind(template_id=template.id, next_due=str(template.next_due))
    planned, final_cursor = plan_occurrences(template, index, today)

    created: list[Transaction] = []
    if planned:
        try:
            created = await storage.create_transactions(planned)
        except StorageError as e:
            log.error("backfill_create_failed", error=str(e), planned=len(planned))
            if audit_logger:
                await audit_logger.log_write_failed(
                    operation="create_occurrences",
                    entity_type="template",
                    entity_id=template.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return TemplateBackfill(
                template=template,
                planned=[t.occurred_on for t in planned],
                next_due=final_cursor,
                error=str(e),
            )

        for occurrence in created:
            index.add(occurrence)

        if audit_logger:
            await audit_logger.log_occurrences_generated(
                template_id=template.id,
                dates=[t.occurred_on for t in created],
                correlation_id=correlation_id,
            )

    try:
        await storage.update_template_next_due(template.id, final_cursor)
    except StorageError as e:
        # Occurrences stay; the next run re-detects them from the old cursor
        log.error("backfill_advance_failed", error=str(e), target=str(final_cursor))
        if audit_logger:
            await audit_logger.log_write_failed(
                operation="update_next_due",
                entity_type="template",
                entity_id=template.id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
        return TemplateBackfill(
            template=template,
            planned=[t.occurred_on for t in planned],
            created=created,
            next_due=final_cursor,
            error=str(e),
        )

    if audit_logger and final_cursor != template.next_due:
        await audit_logger.log_template_advanced(
            template_id=template.id,
            previous=template.next_due,
            next_due=final_cursor,
            correlation_id=correlation_id,
        )

    log.info("template_backfilled", created=len(created), final=str(final_cursor))
    return TemplateBackfill(
        template=template.model_copy(update={"next_due": final_cursor}),
        planned=[t.occurred_on for t in planned],
        created=created,
        next_due=final_cursor,
        advanced=True,
    )


def apply_template_results(
    state: LedgerState,
    results: Iterable[TemplateBackfill],
) -> LedgerState:
    """Fold created occurrences and advanced cursors into local state."""
    new_state = state
    created: list[Transaction] = []
    for result in results:
        if result.advanced:
            new_state = new_state.replace_transaction(result.template)
        created.extend(result.created)
    if created:
        new_state = new_state.add_transactions(
            sorted(created, key=lambda t: t.occurred_on, reverse=True)
        )
    return new_state


async def run_backfill(
    state: LedgerState,
    storage: LedgerStorageInterface,
    today: date,
    audit_logger: Optional[AuditLogger] = None,
    correlation_id: Optional[UUID] = None,
) -> BackfillResult:
    """
    Backfill every due template in `state`.

    Templates are processed one after the other; each remote write is
    awaited before the next step. Storage failures never propagate.

    Returns:
        BackfillResult whose `state` reflects what was persisted
    """
    correlation_id = correlation_id or create_correlation_id()
    due = select_due_templates(state.transactions, today)
    if not due:
        return BackfillResult(state=state)

    index = OccurrenceIndex(state.transactions)
    results: list[TemplateBackfill] = []
    for template in due:
        results.append(await backfill_template(
            template,
            index,
            storage,
            today,
            audit_logger=audit_logger,
            correlation_id=correlation_id,
        ))

    result = BackfillResult(state=state, templates=results)

    if result.created:
        try:
            refreshed = await storage.list_transactions()
            result.state = state.with_transactions(refreshed)
            result.refreshed = True
        except StorageError as e:
            logger.warning("backfill_refresh_failed", error=str(e))
            result.state = apply_template_results(state, results)
    else:
        result.state = apply_template_results(state, results)

    if audit_logger:
        await audit_logger.log_backfill_completed(
            templates_processed=len(due),
            created=len(result.created),
            failures=len(result.failures),
            correlation_id=correlation_id,
        )

    return result

"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
The recurring backfill runs silently from the user's point of view,
so the audit trail is the only place its partial failures show up.

The audit logger:
- Is async so it can be awaited alongside storage calls
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from financeflow.models.audit import AuditEvent, AuditEventBuilder
from financeflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_log table (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent persisted events, newest first (empty without storage)."""
        if not self._storage:
            return []
        try:
            return await self._storage.get_recent_events(limit=limit)
        except Exception as e:
            self._logger.error("audit_read_failed", error=str(e))
            return []

    async def log_session_loaded(
        self,
        transaction_count: int,
        bill_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log session load."""
        await self.log(AuditEventBuilder.session_loaded(
            transaction_count=transaction_count,
            bill_count=bill_count,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        transaction_id: Optional[str],
        description: str,
        amount: str,
        is_template: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a user-entered transaction or template."""
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            description=description,
            amount=amount,
            is_template=is_template,
            correlation_id=correlation_id,
        ))

    async def log_occurrences_generated(
        self,
        template_id: Optional[str],
        dates: list[date],
        correlation_id: UUID,
    ) -> None:
        """Log occurrences created by the backfill."""
        await self.log(AuditEventBuilder.occurrences_generated(
            template_id=template_id,
            dates=dates,
            correlation_id=correlation_id,
        ))

    async def log_template_advanced(
        self,
        template_id: Optional[str],
        previous: date,
        next_due: date,
        correlation_id: UUID,
    ) -> None:
        """Log a template's cursor moving forward."""
        await self.log(AuditEventBuilder.template_advanced(
            template_id=template_id,
            previous=previous,
            next_due=next_due,
            correlation_id=correlation_id,
        ))

    async def log_backfill_completed(
        self,
        templates_processed: int,
        created: int,
        failures: int,
        correlation_id: UUID,
    ) -> None:
        """Log the summary of a backfill run."""
        await self.log(AuditEventBuilder.backfill_completed(
            templates_processed=templates_processed,
            created=created,
            failures=failures,
            correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage write that failed."""
        await self.log(AuditEventBuilder.write_failed(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_recurrence_stopped(
        self,
        template_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.recurrence_stopped(
            template_id=template_id,
            correlation_id=correlation_id,
        ))

    async def log_bill_created(
        self,
        bill_id: Optional[str],
        name: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_created(
            bill_id=bill_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_bill_paid(
        self,
        bill_id: str,
        name: str,
        mirrored_transaction_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_paid(
            bill_id=bill_id,
            name=name,
            mirrored_transaction_id=mirrored_transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_bill_deleted(
        self,
        bill_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_deleted(
            bill_id=bill_id,
            correlation_id=correlation_id,
        ))

    async def log_pin_updated(
        self,
        enabled: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pin_updated(
            enabled=enabled,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action or backfill run.
    Pass it through all subsequent operations.
    """
    return uuid4()

"""
Audit Models for FinanceFlow

Every significant action in the system is logged for audit purposes.
This covers user actions (adding a transaction, paying a bill) as well as
automated ones (the recurring backfill), which otherwise run silently.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    SESSION_LOADED = "session_loaded"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TEMPLATE_CREATED = "template_created"
    RECURRENCE_STOPPED = "recurrence_stopped"

    # Backfill
    OCCURRENCES_GENERATED = "occurrences_generated"
    TEMPLATE_ADVANCED = "template_advanced"
    BACKFILL_COMPLETED = "backfill_completed"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_PAID = "bill_paid"
    BILL_DELETED = "bill_deleted"

    # Settings
    PIN_UPDATED = "pin_updated"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Failures
    WRITE_FAILED = "write_failed"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'template', 'bill')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Storage ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one backfill run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> dict:
        """Convert to a row for the audit_log table."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx_id, "Groceries", "12.50")
        event = AuditEventBuilder.bill_paid(bill_id, "Electricity", mirrored_id)
    """

    @staticmethod
    def session_loaded(
        transaction_count: int,
        bill_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_LOADED,
            correlation_id=correlation_id,
            description=(
                f"Session loaded with {transaction_count} transactions "
                f"and {bill_count} bills"
            ),
            details={
                "transaction_count": transaction_count,
                "bill_count": bill_count,
            },
        )

    @staticmethod
    def transaction_created(
        transaction_id: Optional[str],
        description: str,
        amount: str,
        is_template: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TEMPLATE_CREATED
            if is_template
            else AuditEventType.TRANSACTION_CREATED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="template" if is_template else "transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {description} - {amount}",
            details={
                "description": description,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def occurrences_generated(
        template_id: Optional[str],
        dates: list[date],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCES_GENERATED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Generated {len(dates)} missing occurrences",
            details={
                "dates": [d.isoformat() for d in dates],
            },
        )

    @staticmethod
    def template_advanced(
        template_id: Optional[str],
        previous: date,
        next_due: date,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_ADVANCED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Next due moved from {previous} to {next_due}",
            details={
                "previous": previous.isoformat(),
                "next_due": next_due.isoformat(),
            },
        )

    @staticmethod
    def backfill_completed(
        templates_processed: int,
        created: int,
        failures: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKFILL_COMPLETED,
            severity=AuditSeverity.WARNING if failures else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=(
                f"Backfill processed {templates_processed} templates, "
                f"created {created} occurrences"
            ),
            details={
                "templates_processed": templates_processed,
                "created": created,
                "failures": failures,
            },
        )

    @staticmethod
    def write_failed(
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Write failed: {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def recurrence_stopped(
        template_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRENCE_STOPPED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description="Recurrence stopped by user",
            is_user_action=True,
        )

    @staticmethod
    def bill_created(
        bill_id: Optional[str],
        name: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill saved: {name} - {amount}",
            details={
                "name": name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_paid(
        bill_id: str,
        name: str,
        mirrored_transaction_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill paid: {name}",
            details={
                "mirrored_transaction_id": mirrored_transaction_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_deleted(
        bill_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description="Bill deleted",
            is_user_action=True,
        )

    @staticmethod
    def pin_updated(
        enabled: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_UPDATED,
            entity_type="setting",
            entity_id="app_pin",
            correlation_id=correlation_id,
            description="PIN set" if enabled else "PIN removed",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )

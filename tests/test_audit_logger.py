"""Tests for the audit logger."""

from unittest.mock import AsyncMock

import pytest

from financeflow.audit import AuditLogger, create_correlation_id
from financeflow.models.audit import AuditEventBuilder, AuditEventType


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_persists_event(self, audit_logger, audit_storage):
        correlation_id = create_correlation_id()

        await audit_logger.log_pin_updated(enabled=True, correlation_id=correlation_id)

        (event,) = audit_storage.events
        assert event.event_type == AuditEventType.PIN_UPDATED
        assert event.correlation_id == correlation_id

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self, audit_storage):
        audit_storage.append_event = AsyncMock(side_effect=RuntimeError("table missing"))
        logger = AuditLogger(audit_storage)

        ok = await logger.log(AuditEventBuilder.bill_deleted("bill-1", correlation_id=None))

        assert ok is False

    @pytest.mark.asyncio
    async def test_without_storage(self):
        logger = AuditLogger()

        assert await logger.log(AuditEventBuilder.bill_deleted("bill-1", correlation_id=None))
        assert await logger.recent_events() == []

    @pytest.mark.asyncio
    async def test_recent_events_newest_first(self, audit_logger):
        await audit_logger.log_bill_deleted("a", correlation_id=None)
        await audit_logger.log_bill_deleted("b", correlation_id=None)

        events = await audit_logger.recent_events(limit=1)

        assert [e.entity_id for e in events] == ["b"]

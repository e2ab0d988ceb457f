"""Tests for the audit logger."""

import pytest

from partner_ledger.audit import AuditLogger, create_correlation_id
from partner_ledger.models import AuditEvent, AuditEventBuilder
from partner_ledger.services.storage import AuditStorageInterface, InMemoryAuditStorage


class BrokenAuditStorage(AuditStorageInterface):
    async def append_event(self, event: AuditEvent) -> bool:
        raise RuntimeError("sheet quota exceeded")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return []


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_local_only_logging(self):
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.workspace_created("ws_1_abc"))

    @pytest.mark.asyncio
    async def test_persists_to_storage(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        event = AuditEventBuilder.login_succeeded("ws_1_abc")

        assert await logger.log(event)
        assert await storage.get_recent_events() == [event]

    @pytest.mark.asyncio
    async def test_stamps_correlation_id(self):
        storage = InMemoryAuditStorage()
        correlation_id = create_correlation_id()
        logger = AuditLogger(storage, correlation_id=correlation_id)

        await logger.log(AuditEventBuilder.workspace_created("ws_1_abc"))

        stored = (await storage.get_recent_events())[0]
        assert stored.correlation_id == correlation_id

    @pytest.mark.asyncio
    async def test_keeps_existing_correlation_id(self):
        storage = InMemoryAuditStorage()
        own = create_correlation_id()
        logger = AuditLogger(storage, correlation_id=create_correlation_id())

        await logger.log(AuditEventBuilder.save_failed("ws_1_abc", "timeout", correlation_id=own))

        stored = (await storage.get_recent_events())[0]
        assert stored.correlation_id == own

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self):
        """Test that a broken audit backend never breaks the caller."""
        logger = AuditLogger(BrokenAuditStorage())
        assert await logger.log(AuditEventBuilder.workspace_created("ws_1_abc")) is False

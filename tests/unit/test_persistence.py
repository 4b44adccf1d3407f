"""Unit tests for call history persistence."""
from datetime import datetime
from types import SimpleNamespace

import pytest

from app.api.calls import get_call_history
from app.services.persistence.calls import CallPersistenceService


class TestCallPersistence:
    """Test call persistence service."""

    @pytest.mark.asyncio
    async def test_create_call(self, test_db):
        """Test creating a new call record."""
        service = CallPersistenceService(test_db)

        call = await service.create_call(
            "conn-123",
            caller_id="4:+15550003333",
            correlation_id="correlation-123",
            server_call_id="server-call-123",
        )

        assert call.id is not None
        assert call.call_connection_id == "conn-123"
        assert call.caller_id == "4:+15550003333"
        assert call.status == "in_progress"
        assert call.started_at is not None
        assert call.ended_at is None

    @pytest.mark.asyncio
    async def test_get_call(self, test_db):
        """Test retrieving call by call-connection id."""
        service = CallPersistenceService(test_db)
        created_call = await service.create_call("conn-456", caller_id="4:+15550003333")

        retrieved_call = await service.get_call("conn-456")

        assert retrieved_call is not None
        assert retrieved_call.id == created_call.id
        assert await service.get_call("missing") is None

    @pytest.mark.asyncio
    async def test_create_call_idempotent(self, test_db):
        """Test that creating same call twice returns existing call."""
        service = CallPersistenceService(test_db)

        call1 = await service.create_call("conn-789", caller_id="4:+15550003333")
        call2 = await service.create_call("conn-789", caller_id="4:+15550009999")

        assert call1.id == call2.id
        assert call2.caller_id == "4:+15550003333"

    @pytest.mark.asyncio
    async def test_complete_call(self, test_db):
        """Test recording the end of a call."""
        service = CallPersistenceService(test_db)
        await service.create_call("conn-end", caller_id="4:+15550003333")
        ended_at = datetime(2026, 10, 18, 9, 30)

        call = await service.complete_call(
            "conn-end",
            status="completed",
            outcome="escalated",
            menu_path=["mainmenu", "sales"],
            ended_at=ended_at,
        )

        assert call.status == "completed"
        assert call.outcome == "escalated"
        assert call.menu_path == ["mainmenu", "sales"]
        assert call.ended_at == ended_at

    @pytest.mark.asyncio
    async def test_complete_unknown_call(self, test_db):
        """Test completing a call that was never recorded."""
        service = CallPersistenceService(test_db)
        assert await service.complete_call("missing", status="completed") is None

    @pytest.mark.asyncio
    async def test_list_calls_newest_first(self, test_db):
        """Test listing calls newest first with a limit."""
        service = CallPersistenceService(test_db)
        for index in range(3):
            await service.create_call(f"conn-{index}", caller_id="4:+15550003333")

        calls = await service.list_calls()
        assert [c.call_connection_id for c in calls] == ["conn-2", "conn-1", "conn-0"]

        limited = await service.list_calls(limit=2)
        assert len(limited) == 2


class TestCallHistoryEndpoint:
    """Test the call history endpoint."""

    @pytest.mark.asyncio
    async def test_get_call_history(self, test_db):
        """Test the call history endpoint response."""
        service = CallPersistenceService(test_db)
        await service.create_call("conn-a", caller_id="4:+15550003333", correlation_id="correlation-a")
        await service.complete_call("conn-a", status="completed", outcome="transferred", menu_path=["mainmenu"])

        response = await get_call_history(SimpleNamespace(client=None), limit=10, db=test_db)

        assert len(response) == 1
        call = response[0]
        assert call.call_connection_id == "conn-a"
        assert call.correlation_id == "correlation-a"
        assert call.status == "completed"
        assert call.outcome == "transferred"
        assert call.menu_path == ["mainmenu"]
        assert call.ended_at is not None

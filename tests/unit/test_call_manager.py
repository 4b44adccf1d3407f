"""Unit tests for the call session manager."""
import time
from urllib.parse import parse_qs, urlparse

import pytest

from app.services.call_session.phases import CallPhase
from app.services.events.models import CallEventType, IncomingCallEvent
from app.services.persistence.calls import CallPersistenceService
from app.services.telephony.commands import (
    HangupCommand,
    PlayCommand,
    StartRecognizeCommand,
    TransferCommand,
)


@pytest.fixture
def incoming(incoming_call_payload):
    return IncomingCallEvent.model_validate(incoming_call_payload)


def callback_token(callback_url: str) -> str:
    return urlparse(callback_url).path.rsplit("/", 1)[-1]


class TestAnswering:
    """Test answering and binding incoming calls."""

    @pytest.mark.asyncio
    async def test_answer_binds_session(self, call_manager, telephony, dispatcher, incoming):
        """Test that answering registers the call under its connection id."""
        session = await call_manager.handle_incoming_call(incoming)

        assert session is not None
        assert session.call_connection_id == "conn-1"
        assert session.phase == CallPhase.ANSWERING
        assert call_manager.get_session("conn-1") is session
        assert call_manager.pending_count == 0
        assert await dispatcher.is_registered("conn-1")

        context, url = telephony.answered[0]
        assert context == "incoming-context-token"
        assert url.startswith("https://ivr.test/api/callbacks/")
        assert callback_token(url) == session.callback_token
        assert parse_qs(urlparse(url).query)["callerId"] == ["4:+15550003333"]

    @pytest.mark.asyncio
    async def test_answer_failure(self, call_manager, telephony, dispatcher, incoming):
        """Test that a refused answer leaves nothing behind."""
        telephony.fail_answer = True

        session = await call_manager.handle_incoming_call(incoming)

        assert session is None
        assert call_manager.pending_count == 0
        assert await dispatcher.active_calls() == []

    @pytest.mark.asyncio
    async def test_each_call_gets_its_own_token(self, call_manager, telephony, incoming):
        """Test that callback tokens are unique per call."""
        first = await call_manager.handle_incoming_call(incoming)
        telephony.call_connection_id = "conn-2"
        second = await call_manager.handle_incoming_call(incoming)

        assert first.callback_token != second.callback_token
        assert call_manager.get_session("conn-2") is second

    @pytest.mark.asyncio
    async def test_connected_before_answer_returns(self, call_manager, telephony, make_event, incoming):
        """A CallConnected delivered while answer_call is in flight binds the pending session."""
        answer_call = telephony.answer_call

        async def answer_and_connect(context, url, operation_context=None):
            handled = await call_manager.handle_callback(
                callback_token(url), make_event(CallEventType.CALL_CONNECTED)
            )
            assert handled
            return await answer_call(context, url, operation_context)

        telephony.answer_call = answer_and_connect

        session = await call_manager.handle_incoming_call(incoming)

        assert session.phase == CallPhase.RECOGNIZING
        assert [type(c) for c in telephony.issued()] == [StartRecognizeCommand]
        assert call_manager.get_session("conn-1") is session

    @pytest.mark.asyncio
    async def test_callback_for_unknown_call(self, call_manager, make_event):
        """Test that callbacks for unknown calls are dropped."""
        handled = await call_manager.handle_callback("unknown-token", make_event(CallEventType.CALL_CONNECTED))
        assert handled is False


class TestCallLifecycle:
    """Test calls driven end to end through the manager."""

    @pytest.mark.asyncio
    async def test_transfer_flow(self, call_manager, telephony, dispatcher, make_event, incoming):
        """Test connect, digit 4, transfer and disconnect."""
        session = await call_manager.handle_incoming_call(incoming)
        token = session.callback_token

        await call_manager.handle_callback(token, make_event(CallEventType.CALL_CONNECTED))
        recognize = telephony.issued()[-1]
        assert isinstance(recognize, StartRecognizeCommand)
        assert recognize.menu_id == "mainmenu"
        assert recognize.target_raw_id == "4:+15550003333"

        await call_manager.handle_callback(token, make_event(
            CallEventType.RECOGNIZE_COMPLETED,
            operation_context=recognize.operation_context,
            tones=["4"],
        ))
        transfer = telephony.issued()[-1]
        assert isinstance(transfer, TransferCommand)
        assert transfer.target_raw_id == "4:+15550001111"

        await call_manager.handle_callback(token, make_event(CallEventType.CALL_TRANSFER_ACCEPTED))
        await call_manager.handle_callback(token, make_event(CallEventType.CALL_DISCONNECTED))

        assert session.is_closed
        assert session.outcome == "transferred"
        assert call_manager.get_session("conn-1") is None
        assert not await dispatcher.is_registered("conn-1")

    @pytest.mark.asyncio
    async def test_invalid_digit_plays_then_hangs_up(self, call_manager, telephony, make_event, incoming):
        """Test that an invalid digit plays the prompt and then hangs up."""
        session = await call_manager.handle_incoming_call(incoming)
        token = session.callback_token

        await call_manager.handle_callback(token, make_event(CallEventType.CALL_CONNECTED))
        recognize = telephony.issued()[-1]
        await call_manager.handle_callback(token, make_event(
            CallEventType.RECOGNIZE_COMPLETED,
            operation_context=recognize.operation_context,
            tones=["7"],
        ))
        play = telephony.issued()[-1]
        assert isinstance(play, PlayCommand)
        assert play.prompt_uri.endswith("/invalid.wav")

        await call_manager.handle_callback(token, make_event(
            CallEventType.PLAY_COMPLETED, operation_context=play.operation_context
        ))

        assert isinstance(telephony.issued()[-1], HangupCommand)
        assert session.phase == CallPhase.TERMINATING

    @pytest.mark.asyncio
    async def test_duplicate_disconnect_ignored(self, call_manager, make_event, incoming):
        """Test that a second disconnect is dropped after the call closed."""
        session = await call_manager.handle_incoming_call(incoming)
        token = session.callback_token

        assert await call_manager.handle_callback(token, make_event(CallEventType.CALL_DISCONNECTED))
        assert not await call_manager.handle_callback(token, make_event(CallEventType.CALL_DISCONNECTED))

    @pytest.mark.asyncio
    async def test_command_failure_hangs_up(self, call_manager, telephony, dispatcher, make_event, incoming):
        """Test that a failed command ends in a best-effort hangup."""
        telephony.fail_on = {StartRecognizeCommand}
        session = await call_manager.handle_incoming_call(incoming)

        await call_manager.handle_callback(session.callback_token, make_event(CallEventType.CALL_CONNECTED))

        assert telephony.issued() == [HangupCommand(for_everyone=True)]
        assert session.hangup_requested
        # Still tracked until the provider reports the disconnect
        assert await dispatcher.is_registered("conn-1")

    @pytest.mark.asyncio
    async def test_hangup_failure_contained(self, call_manager, telephony, make_event, incoming):
        """Test that a failed hangup does not raise."""
        telephony.fail_on = {StartRecognizeCommand, HangupCommand}
        session = await call_manager.handle_incoming_call(incoming)

        handled = await call_manager.handle_callback(
            session.callback_token, make_event(CallEventType.CALL_CONNECTED)
        )

        assert handled
        assert telephony.issued() == []


class TestCallHistory:
    """Test call history recorded by the manager."""

    async def _fetch(self, test_session_factory, call_connection_id):
        async with test_session_factory() as db:
            return await CallPersistenceService(db).get_call(call_connection_id)

    @pytest.mark.asyncio
    async def test_call_recorded(self, persistent_call_manager, telephony, make_event, incoming, test_session_factory):
        """Test that a call's start and end are stored."""
        session = await persistent_call_manager.handle_incoming_call(incoming)

        record = await self._fetch(test_session_factory, "conn-1")
        assert record.status == "in_progress"
        assert record.caller_id == "4:+15550003333"
        assert record.correlation_id == "correlation-1"
        assert record.server_call_id == "server-call-1"

        token = session.callback_token
        await persistent_call_manager.handle_callback(token, make_event(CallEventType.CALL_CONNECTED))
        recognize = telephony.issued()[-1]
        await persistent_call_manager.handle_callback(token, make_event(
            CallEventType.RECOGNIZE_COMPLETED,
            operation_context=recognize.operation_context,
            tones=["1"],
        ))
        await persistent_call_manager.handle_callback(token, make_event(CallEventType.CALL_DISCONNECTED))

        record = await self._fetch(test_session_factory, "conn-1")
        assert record.status == "completed"
        assert record.outcome == "disconnected"
        assert record.menu_path == ["mainmenu", "sales"]
        assert record.ended_at is not None

    @pytest.mark.asyncio
    async def test_reaped_call_abandoned(self, persistent_call_manager, dispatcher, incoming, test_session_factory):
        """Test that reaped calls are recorded as abandoned."""
        await persistent_call_manager.handle_incoming_call(incoming)

        reaped = await dispatcher.reap_idle(now=time.monotonic() + 3600)

        assert reaped == ["conn-1"]
        assert persistent_call_manager.get_session("conn-1") is None
        record = await self._fetch(test_session_factory, "conn-1")
        assert record.status == "abandoned"
        assert record.outcome is None

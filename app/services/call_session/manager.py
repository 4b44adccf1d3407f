"""Call session manager."""
import asyncio
import logging
import uuid
from functools import partial
from typing import Callable, Dict, Optional
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.call_session.models import CallSession
from app.services.call_session.transitions import CallTransitionHandler
from app.services.events.dispatcher import EventDispatcher
from app.services.events.models import CallEvent, CallEventType, IncomingCallEvent
from app.services.persistence.calls import CallPersistenceService
from app.services.telephony.base import TelephonyClient, TelephonyError
from app.services.telephony.commands import Command, HangupCommand

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES = tuple(CallEventType)


class CallSessionManager:
    """Creates call sessions, wires them to the dispatcher and runs their commands."""

    def __init__(
        self,
        telephony: TelephonyClient,
        dispatcher: EventDispatcher,
        transitions: CallTransitionHandler,
        callback_base_url: str,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.telephony = telephony
        self.dispatcher = dispatcher
        self.transitions = transitions
        self.callback_base_url = callback_base_url.rstrip("/")
        self.session_factory = session_factory
        # Sessions whose answer has been issued but whose connection id is not bound yet
        self._pending: Dict[str, CallSession] = {}
        self._sessions: Dict[str, CallSession] = {}
        self._bind_lock = asyncio.Lock()
        self.dispatcher.on_reap = self._on_reaped

    def callback_url(self, callback_token: str, caller_id: str) -> str:
        """Callback URI handed to the provider when answering."""
        return (
            f"{self.callback_base_url}/api/callbacks/{callback_token}"
            f"?callerId={quote(caller_id, safe='')}"
        )

    def get_session(self, call_connection_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_connection_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def handle_incoming_call(self, incoming: IncomingCallEvent) -> Optional[CallSession]:
        """
        Answer an incoming call and start tracking it.

        Returns:
            The new session, or None when the provider refused the answer.
        """
        callback_token = str(uuid.uuid4())
        session = self.transitions.create_session(incoming, callback_token)
        self._pending[callback_token] = session

        try:
            call_connection_id = await self.telephony.answer_call(
                incoming.incoming_call_context,
                self.callback_url(callback_token, session.caller_id),
                operation_context="answer",
            )
        except TelephonyError as e:
            self._pending.pop(callback_token, None)
            logger.error(
                f"[CALL MANAGER] Answer failed - CorrelationId: {incoming.correlation_id}, "
                f"Error: {str(e)}"
            )
            return None

        logger.info(
            f"[CALL MANAGER] Answered call for connection id: {call_connection_id} - "
            f"CorrelationId: {incoming.correlation_id}"
        )
        await self._bind(session, call_connection_id)
        return session

    async def handle_callback(self, callback_token: str, event: CallEvent) -> bool:
        """Route one callback event, binding a pending session first if needed."""
        if not await self.dispatcher.is_registered(event.call_connection_id):
            session = self._pending.get(callback_token)
            if session is not None:
                # The provider can report CallConnected before answer_call returns
                await self._bind(session, event.call_connection_id)
        return await self.dispatcher.dispatch(event)

    async def _bind(self, session: CallSession, call_connection_id: str) -> None:
        async with self._bind_lock:
            if session.call_connection_id is not None:
                return
            session.call_connection_id = call_connection_id
            self._pending.pop(session.callback_token, None)
            self._sessions[call_connection_id] = session
            await self.dispatcher.register_all(
                call_connection_id, HANDLED_EVENT_TYPES, partial(self._on_event, session)
            )
        await self._record_start(session)

    async def _on_event(self, session: CallSession, event: CallEvent) -> None:
        commands = self.transitions.apply(session, event)
        for command in commands:
            await self._issue(session, command)
        if session.is_closed:
            await self._close(session)

    async def _issue(self, session: CallSession, command: Command) -> None:
        call_connection_id = session.call_connection_id
        try:
            await self.telephony.execute(call_connection_id, command)
        except TelephonyError as e:
            logger.error(
                f"[CALL MANAGER] {type(command).__name__} failed - CallConnectionId: {call_connection_id}, "
                f"Error: {str(e)}"
            )
            if isinstance(command, HangupCommand):
                # Left for the idle reaper
                return
            await self._hang_up_quietly(session)

    async def _hang_up_quietly(self, session: CallSession) -> None:
        hangup = self.transitions.hangup(session)
        try:
            await self.telephony.execute(session.call_connection_id, hangup)
        except TelephonyError as e:
            logger.error(
                f"[CALL MANAGER] Best-effort hangup failed - CallConnectionId: {session.call_connection_id}, "
                f"Error: {str(e)}"
            )

    async def _close(self, session: CallSession) -> None:
        call_connection_id = session.call_connection_id
        if not await self.dispatcher.deregister(call_connection_id):
            return
        self._sessions.pop(call_connection_id, None)
        await self._record_end(session, status="completed")

    async def _on_reaped(self, call_connection_id: str) -> None:
        session = self._sessions.pop(call_connection_id, None)
        if session is not None:
            await self._record_end(session, status="abandoned")

    async def _record_start(self, session: CallSession) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).create_call(
                    session.call_connection_id,
                    caller_id=session.caller_id,
                    correlation_id=session.correlation_id,
                    server_call_id=session.server_call_id,
                )
        except Exception as e:
            logger.error(
                f"[CALL MANAGER] Could not record call start - CallConnectionId: {session.call_connection_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    async def _record_end(self, session: CallSession, status: str) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).complete_call(
                    session.call_connection_id,
                    status=status,
                    outcome=session.outcome,
                    menu_path=session.menu_path,
                )
        except Exception as e:
            logger.error(
                f"[CALL MANAGER] Could not record call end - CallConnectionId: {session.call_connection_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

"""Call flow state machine.

`CallTransitionHandler.apply` consumes one lifecycle event for a session,
mutates the session and returns the provider commands to issue. It never
talks to the provider itself, so every transition can be exercised without
a network.
"""
import logging
from typing import Callable, List, Optional

from app.services.call_session.models import CallSession
from app.services.call_session.phases import CallPhase
from app.services.call_session.retry import RetryDecision, RetryPolicy
from app.services.events.models import CallEvent, CallEventType, IncomingCallEvent
from app.services.menu.base import ActionKind
from app.services.menu.repository import MenuCatalog
from app.services.telephony.commands import (
    Command,
    HangupCommand,
    PlayCommand,
    StartRecognizeCommand,
    TransferCommand,
)

logger = logging.getLogger(__name__)

OUTCOME_INVALID_SELECTION = "invalid_selection"
OUTCOME_ESCALATED = "escalated"
OUTCOME_TRANSFERRED = "transferred"
OUTCOME_TRANSFER_FAILED = "transfer_failed"
OUTCOME_DISCONNECTED = "disconnected"

# Events whose operation context must match the session's in-flight operation
_CONTEXT_BOUND_EVENTS = {
    CallEventType.RECOGNIZE_COMPLETED,
    CallEventType.RECOGNIZE_FAILED,
    CallEventType.PLAY_COMPLETED,
    CallEventType.PLAY_FAILED,
}


class CallTransitionHandler:
    """Decides the next provider command for each call event."""

    def __init__(
        self,
        catalog: MenuCatalog,
        retry_policy: RetryPolicy,
        prompt_uri: Callable[[str], str],
        initial_silence_timeout_seconds: int = 5,
        inter_tone_timeout_seconds: int = 2,
        stop_tones: Optional[List[str]] = None,
        agent_transfer_target: Optional[str] = None,
    ):
        self.catalog = catalog
        self.retry_policy = retry_policy
        self.prompt_uri = prompt_uri
        self.initial_silence_timeout_seconds = initial_silence_timeout_seconds
        self.inter_tone_timeout_seconds = inter_tone_timeout_seconds
        self.stop_tones = stop_tones if stop_tones is not None else ["asterisk"]
        self.agent_transfer_target = agent_transfer_target

    def create_session(self, incoming: IncomingCallEvent, callback_token: str) -> CallSession:
        """Start a session for an incoming call, positioned at the main menu."""
        return CallSession(
            caller_id=incoming.caller_id,
            callback_token=callback_token,
            correlation_id=incoming.correlation_id,
            server_call_id=incoming.server_call_id,
            current_menu=self.catalog.main_menu,
            retries_remaining=self.retry_policy.max_retries,
            menu_path=[self.catalog.main_menu],
        )

    def apply(self, session: CallSession, event: CallEvent) -> List[Command]:
        """Apply one event to the session and return the commands to issue."""
        if session.is_closed:
            logger.debug(
                f"[CALL FLOW] Ignoring {event.type.value} for closed call - "
                f"CallConnectionId: {event.call_connection_id}"
            )
            return []

        if event.type == CallEventType.CALL_DISCONNECTED:
            session.advance(CallPhase.CLOSED)
            if session.outcome is None:
                session.outcome = OUTCOME_DISCONNECTED
            logger.info(
                f"[CALL FLOW] Call disconnected - CallConnectionId: {event.call_connection_id}, "
                f"Outcome: {session.outcome}"
            )
            return []

        if event.type in _CONTEXT_BOUND_EVENTS and event.operation_context != session.operation_context:
            logger.info(
                f"[CALL FLOW] Stale {event.type.value} dropped - CallConnectionId: {event.call_connection_id}, "
                f"Event context: {event.operation_context}, Current context: {session.operation_context}"
            )
            return []

        if event.type == CallEventType.CALL_CONNECTED:
            return self._on_connected(session, event)
        if event.type == CallEventType.RECOGNIZE_COMPLETED:
            return self._on_recognize_completed(session, event)
        if event.type == CallEventType.RECOGNIZE_FAILED:
            return self._on_recognize_failed(session, event)
        if event.type in (CallEventType.PLAY_COMPLETED, CallEventType.PLAY_FAILED):
            return self._on_play_finished(session, event)
        if event.type == CallEventType.CALL_TRANSFER_ACCEPTED:
            logger.info(f"[CALL FLOW] Transfer accepted - CallConnectionId: {event.call_connection_id}")
            return []
        if event.type == CallEventType.CALL_TRANSFER_FAILED:
            return self._on_transfer_failed(session, event)

        logger.warning(f"[CALL FLOW] Unhandled event type: {event.type.value}")
        return []

    def _on_connected(self, session: CallSession, event: CallEvent) -> List[Command]:
        if session.phase != CallPhase.ANSWERING:
            logger.info(
                f"[CALL FLOW] Duplicate CallConnected ignored - CallConnectionId: {event.call_connection_id}"
            )
            return []
        logger.info(
            f"[CALL FLOW] Call connected, starting menu '{session.current_menu}' - "
            f"CallConnectionId: {event.call_connection_id}"
        )
        session.advance(CallPhase.RECOGNIZING)
        return [self._recognize(session, session.current_menu)]

    def _on_recognize_completed(self, session: CallSession, event: CallEvent) -> List[Command]:
        if session.phase != CallPhase.RECOGNIZING:
            return []

        # An empty collection behaves like any unmapped key.
        digit = event.first_tone
        action = self.catalog.resolve(session.current_menu, digit)
        logger.info(
            f"[CALL FLOW] Digit {digit!r} in menu '{session.current_menu}' -> {action.kind.value} - "
            f"CallConnectionId: {event.call_connection_id}"
        )

        if action.kind == ActionKind.NAVIGATE_TO:
            session.current_menu = action.menu_id
            session.menu_path.append(action.menu_id)
            return [self._recognize(session, action.menu_id)]

        if action.kind == ActionKind.TRANSFER_TO_AGENT and self.agent_transfer_target:
            session.advance(CallPhase.ROUTED)
            session.outcome = OUTCOME_TRANSFERRED
            return [
                TransferCommand(
                    target_raw_id=self.agent_transfer_target,
                    operation_context=session.next_operation_context("transfer"),
                )
            ]

        return [self._terminate_with_invalid_prompt(session, OUTCOME_INVALID_SELECTION)]

    def _on_recognize_failed(self, session: CallSession, event: CallEvent) -> List[Command]:
        if session.phase != CallPhase.RECOGNIZING:
            return []

        decision = self.retry_policy.on_recognition_failure(session, event.failure_reason)
        if decision == RetryDecision.RETRY:
            return [self._recognize(session, session.current_menu)]

        logger.warning(
            f"[CALL FLOW] Recognize failed, escalating - CallConnectionId: {event.call_connection_id}, "
            f"Code: {event.result_code}, SubCode: {event.result_sub_code}, Message: {event.result_message}"
        )
        return [self._terminate_with_invalid_prompt(session, OUTCOME_ESCALATED)]

    def _on_play_finished(self, session: CallSession, event: CallEvent) -> List[Command]:
        if session.phase != CallPhase.TERMINATING or session.hangup_requested:
            return []
        if event.type == CallEventType.PLAY_FAILED:
            logger.error(
                f"[CALL FLOW] Play failed, hanging up - CallConnectionId: {event.call_connection_id}, "
                f"Code: {event.result_code}, SubCode: {event.result_sub_code}, Message: {event.result_message}"
            )
        return [self.hangup(session)]

    def _on_transfer_failed(self, session: CallSession, event: CallEvent) -> List[Command]:
        logger.error(
            f"[CALL FLOW] Encountered error during call transfer - CallConnectionId: {event.call_connection_id}, "
            f"message={event.result_message}, code={event.result_code}, subCode={event.result_sub_code}"
        )
        if session.phase != CallPhase.ROUTED:
            return []
        return [self._terminate_with_invalid_prompt(session, OUTCOME_TRANSFER_FAILED)]

    def hangup(self, session: CallSession) -> HangupCommand:
        """Mark the session as hanging up and build the command."""
        session.advance(CallPhase.TERMINATING)
        session.hangup_requested = True
        session.operation_context = None
        return HangupCommand(for_everyone=True)

    def _recognize(self, session: CallSession, menu_id: str) -> StartRecognizeCommand:
        session.advance(CallPhase.RECOGNIZING)
        return StartRecognizeCommand(
            menu_id=menu_id,
            target_raw_id=session.caller_id,
            prompt_uri=self.prompt_uri(self.catalog.prompt_for(menu_id)),
            operation_context=session.next_operation_context(f"recognize:{menu_id}"),
            initial_silence_timeout_seconds=self.initial_silence_timeout_seconds,
            inter_tone_timeout_seconds=self.inter_tone_timeout_seconds,
            stop_tones=self.stop_tones,
        )

    def _terminate_with_invalid_prompt(self, session: CallSession, outcome: str) -> PlayCommand:
        # Invalid digits, exhausted retries and failed transfers all end here.
        session.advance(CallPhase.TERMINATING)
        session.outcome = outcome
        return PlayCommand(
            prompt_uri=self.prompt_uri(self.catalog.invalid_prompt),
            operation_context=session.next_operation_context("play:invalid"),
        )

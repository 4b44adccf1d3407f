"""Retry policy for failed DTMF recognition."""
import logging
from enum import Enum

from app.services.call_session.models import CallSession
from app.services.events.models import RecognizeFailureReason

logger = logging.getLogger(__name__)


class RetryDecision(str, Enum):
    RETRY = "retry"
    ESCALATE = "escalate"


class RetryPolicy:
    """Re-prompt on silence while the session still has retry budget."""

    def __init__(self, max_retries: int = 2):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries

    def on_recognition_failure(
        self, session: CallSession, failure_reason: RecognizeFailureReason
    ) -> RetryDecision:
        """Decide whether to re-prompt. Spends one retry when it does."""
        if failure_reason == RecognizeFailureReason.INITIAL_SILENCE_TIMEOUT and session.use_retry():
            logger.info(
                f"[RETRY] Silence timeout, re-prompting - CallConnectionId: {session.call_connection_id}, "
                f"Retries left: {session.retries_remaining}"
            )
            return RetryDecision.RETRY

        logger.info(
            f"[RETRY] Escalating - CallConnectionId: {session.call_connection_id}, "
            f"Reason: {failure_reason.value}, Retries left: {session.retries_remaining}"
        )
        return RetryDecision.ESCALATE

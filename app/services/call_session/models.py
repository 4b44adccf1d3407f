"""Call session models."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.services.call_session.phases import CallPhase


class PhaseTransitionError(ValueError):
    """Raised when a session would move to an earlier phase."""


class CallSession(BaseModel):
    """Mutable per-call state. One instance per answered call."""

    caller_id: str
    callback_token: str
    current_menu: str
    retries_remaining: int = Field(ge=0)
    correlation_id: Optional[str] = None
    server_call_id: Optional[str] = None
    call_connection_id: Optional[str] = None  # Assigned once the answer succeeds
    phase: CallPhase = CallPhase.ANSWERING
    operation_context: Optional[str] = None  # Label of the in-flight provider operation
    operation_sequence: int = 0
    hangup_requested: bool = False
    outcome: Optional[str] = None
    menu_path: List[str] = []
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def advance(self, phase: CallPhase) -> None:
        """Move to `phase`. Phases only move forward; RECOGNIZING may repeat."""
        if phase == self.phase:
            if phase == CallPhase.RECOGNIZING or phase == CallPhase.TERMINATING:
                return
            raise PhaseTransitionError(f"Session already in phase {phase.value}")
        if phase.order < self.phase.order:
            raise PhaseTransitionError(
                f"Cannot move from {self.phase.value} back to {phase.value}"
            )
        self.phase = phase

    def next_operation_context(self, label: str) -> str:
        """Mint and remember the context for a new provider operation."""
        self.operation_sequence += 1
        self.operation_context = f"{label}:{self.operation_sequence}"
        return self.operation_context

    def use_retry(self) -> bool:
        """Spend one retry if any remain."""
        if self.retries_remaining <= 0:
            return False
        self.retries_remaining -= 1
        return True

    @property
    def is_closed(self) -> bool:
        return self.phase == CallPhase.CLOSED

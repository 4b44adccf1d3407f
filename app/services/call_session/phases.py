"""Call session lifecycle phases."""
from enum import Enum


class CallPhase(str, Enum):
    """Phases a call moves through, in order."""

    ANSWERING = "answering"  # Answer issued, waiting for CallConnected
    RECOGNIZING = "recognizing"  # Menu prompt playing / collecting a digit
    ROUTED = "routed"  # Handed to a destination (agent transfer)
    TERMINATING = "terminating"  # Final prompt playing or hangup issued
    CLOSED = "closed"  # Disconnected, handlers removed

    def __str__(self) -> str:
        """Return the string value of the phase."""
        return self.value

    @property
    def order(self) -> int:
        return _PHASE_ORDER[self]


_PHASE_ORDER = {phase: index for index, phase in enumerate(CallPhase)}

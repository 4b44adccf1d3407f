"""Call lifecycle events as seen by the call flow."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

EVENT_TYPE_PREFIX = "Microsoft.Communication."

# Provider media sub codes
SUBCODE_INITIAL_SILENCE_TIMEOUT = 8510
SUBCODE_INTER_TONE_TIMEOUT = 8532


class CallEventType(str, Enum):
    """Lifecycle events the call flow reacts to."""

    CALL_CONNECTED = "CallConnected"
    CALL_DISCONNECTED = "CallDisconnected"
    RECOGNIZE_COMPLETED = "RecognizeCompleted"
    RECOGNIZE_FAILED = "RecognizeFailed"
    PLAY_COMPLETED = "PlayCompleted"
    PLAY_FAILED = "PlayFailed"
    CALL_TRANSFER_ACCEPTED = "CallTransferAccepted"
    CALL_TRANSFER_FAILED = "CallTransferFailed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_provider_type(cls, event_type: str) -> Optional["CallEventType"]:
        """Map 'Microsoft.Communication.RecognizeCompleted' style names."""
        name = event_type[len(EVENT_TYPE_PREFIX):] if event_type.startswith(EVENT_TYPE_PREFIX) else event_type
        try:
            return cls(name)
        except ValueError:
            return None


class RecognizeFailureReason(str, Enum):
    """Why a DTMF recognition ended without a result."""

    INITIAL_SILENCE_TIMEOUT = "InitialSilenceTimeout"
    INTER_TONE_TIMEOUT = "InterToneTimeout"
    OTHER = "Other"

    @classmethod
    def from_sub_code(cls, sub_code: Optional[int]) -> "RecognizeFailureReason":
        if sub_code == SUBCODE_INITIAL_SILENCE_TIMEOUT:
            return cls.INITIAL_SILENCE_TIMEOUT
        if sub_code == SUBCODE_INTER_TONE_TIMEOUT:
            return cls.INTER_TONE_TIMEOUT
        return cls.OTHER


class CallEvent(BaseModel):
    """A single decoded lifecycle event for one call connection."""

    model_config = ConfigDict(frozen=True)

    type: CallEventType
    call_connection_id: str
    server_call_id: Optional[str] = None
    correlation_id: Optional[str] = None
    operation_context: Optional[str] = None
    tones: List[str] = []  # keypad characters, in collection order
    result_code: Optional[int] = None
    result_sub_code: Optional[int] = None
    result_message: Optional[str] = None

    @property
    def first_tone(self) -> Optional[str]:
        """The single collected digit, or None when nothing was collected."""
        return self.tones[0] if self.tones else None

    @property
    def failure_reason(self) -> RecognizeFailureReason:
        return RecognizeFailureReason.from_sub_code(self.result_sub_code)


class CommunicationIdentifier(BaseModel):
    """Provider identity as delivered in incoming call payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    raw_id: str = Field(alias="rawId")
    kind: Optional[str] = None


class IncomingCallEvent(BaseModel):
    """Payload of an incoming call notification. Consumed once per call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    caller_display_name: Optional[str] = Field(default=None, alias="callerDisplayName")
    correlation_id: Optional[str] = Field(default=None, alias="correlationId")
    from_: CommunicationIdentifier = Field(alias="from")
    to: CommunicationIdentifier
    incoming_call_context: str = Field(alias="incomingCallContext")
    server_call_id: Optional[str] = Field(default=None, alias="serverCallId")

    @property
    def caller_id(self) -> str:
        return self.from_.raw_id

"""Decoding of provider webhook payloads into internal events."""
import json
import logging
from typing import Any, Dict, List, Optional

from azure.core.messaging import CloudEvent
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.services.events.models import CallEvent, CallEventType, IncomingCallEvent

logger = logging.getLogger(__name__)

SUBSCRIPTION_VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"
INCOMING_CALL_EVENT = "Microsoft.Communication.IncomingCall"

# Provider tone names to keypad characters
TONE_KEYS = {
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "asterisk": "*",
    "pound": "#",
    "a": "A",
    "b": "B",
    "c": "C",
    "d": "D",
}


class EventDecodeError(ValueError):
    """A webhook entry could not be turned into an event."""


class EventGridEnvelope(BaseModel):
    """One entry of an Event Grid delivery."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    event_type: str = Field(alias="eventType")
    subject: Optional[str] = None
    data: Dict[str, Any] = {}

    @property
    def is_subscription_validation(self) -> bool:
        return self.event_type == SUBSCRIPTION_VALIDATION_EVENT

    @property
    def validation_code(self) -> Optional[str]:
        return self.data.get("validationCode")

    def to_incoming_call(self) -> IncomingCallEvent:
        try:
            return IncomingCallEvent.model_validate(self.data)
        except ValidationError as e:
            raise EventDecodeError(f"Invalid incoming call payload: {e}") from e


def decode_event_grid_batch(body: Any) -> List[EventGridEnvelope]:
    """Parse an Event Grid delivery (a JSON array). Bad entries are skipped."""
    if isinstance(body, dict):
        body = [body]
    if not isinstance(body, list):
        raise EventDecodeError("Event Grid delivery must be a JSON array")

    envelopes = []
    for index, raw in enumerate(body):
        try:
            envelopes.append(EventGridEnvelope.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"[INGRESS] Skipping malformed Event Grid entry #{index}: {e}")
    return envelopes


def normalize_tones(tones: Optional[List[Any]]) -> List[str]:
    """Map provider tone names to keypad characters, dropping unknown ones."""
    keys = []
    for tone in tones or []:
        key = TONE_KEYS.get(str(tone).lower())
        if key is None:
            logger.debug(f"[INGRESS] Ignoring unknown tone {tone!r}")
            continue
        keys.append(key)
    return keys


def _event_data(event: CloudEvent) -> Dict[str, Any]:
    data = event.data
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise EventDecodeError(f"Event data is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise EventDecodeError("Event data must be an object")
    return data


def decode_call_event(raw: Dict[str, Any]) -> CallEvent:
    """Turn one CloudEvent dict from the callback webhook into a CallEvent."""
    if not isinstance(raw, dict):
        raise EventDecodeError("CloudEvent must be an object")
    try:
        cloud_event = CloudEvent.from_dict(raw)
    except (KeyError, ValueError) as e:
        raise EventDecodeError(str(e)) from e

    event_type = CallEventType.from_provider_type(cloud_event.type)
    if event_type is None:
        raise EventDecodeError(f"Unsupported event type: {cloud_event.type}")

    data = _event_data(cloud_event)
    call_connection_id = data.get("callConnectionId")
    if not call_connection_id:
        raise EventDecodeError(f"{event_type.value} without callConnectionId")

    result_information = _sub_object(data, "resultInformation", event_type)
    # Older API versions report tones under collectTonesResult
    dtmf_key = "dtmfResult" if data.get("dtmfResult") else "collectTonesResult"
    dtmf_result = _sub_object(data, dtmf_key, event_type)
    tones = dtmf_result.get("tones")
    if tones is not None and not isinstance(tones, list):
        raise EventDecodeError(f"{event_type.value} {dtmf_key}.tones must be a list")

    try:
        return CallEvent(
            type=event_type,
            call_connection_id=call_connection_id,
            server_call_id=data.get("serverCallId"),
            correlation_id=data.get("correlationId"),
            operation_context=data.get("operationContext"),
            tones=normalize_tones(tones),
            result_code=result_information.get("code"),
            result_sub_code=result_information.get("subCode"),
            result_message=result_information.get("message"),
        )
    except ValidationError as e:
        raise EventDecodeError(f"Invalid {event_type.value} payload: {e}") from e


def _sub_object(data: Dict[str, Any], key: str, event_type: CallEventType) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise EventDecodeError(f"{event_type.value} {key} must be an object")
    return value


def decode_call_events(body: Any) -> List[CallEvent]:
    """Decode a callback batch, logging and skipping entries that fail."""
    if isinstance(body, dict):
        body = [body]
    if not isinstance(body, list):
        raise EventDecodeError("Callback delivery must be a JSON array")

    events = []
    for index, raw in enumerate(body):
        try:
            events.append(decode_call_event(raw))
        except EventDecodeError as e:
            logger.warning(f"[INGRESS] Skipping callback entry #{index}: {e}")
    return events

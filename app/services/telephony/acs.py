"""Azure Communication Services call automation client."""
import logging
from typing import Optional

from azure.communication.callautomation import (
    CommunicationCloudEnvironment,
    CommunicationIdentifier,
    CommunicationUserIdentifier,
    DtmfTone,
    FileSource,
    MicrosoftTeamsUserIdentifier,
    PhoneNumberIdentifier,
    RecognizeInputType,
    UnknownIdentifier,
)
from azure.communication.callautomation.aio import CallAutomationClient
from azure.core.exceptions import AzureError

from app.services.telephony.base import TelephonyClient, TelephonyError
from app.services.telephony.commands import PlayCommand, StartRecognizeCommand, TransferCommand

logger = logging.getLogger(__name__)

PHONE_NUMBER_PREFIX = "4:"
ACS_USER_PREFIXES = ("8:acs:", "8:spool:", "8:dod-acs:", "8:gcch-acs:")
TEAMS_USER_PREFIXES = {
    "8:orgid:": CommunicationCloudEnvironment.PUBLIC,
    "8:dod:": CommunicationCloudEnvironment.DOD,
    "8:gcch:": CommunicationCloudEnvironment.GCCH,
}


def identifier_from_raw_id(raw_id: str) -> CommunicationIdentifier:
    """Rebuild a communication identifier from its raw id.

    Phone numbers, ACS users and Teams users get their typed identifier;
    anything else is passed through as an UnknownIdentifier.
    """
    if raw_id.startswith(PHONE_NUMBER_PREFIX):
        return PhoneNumberIdentifier(raw_id[len(PHONE_NUMBER_PREFIX):], raw_id=raw_id)
    if raw_id.startswith(ACS_USER_PREFIXES):
        return CommunicationUserIdentifier(raw_id)
    for prefix, cloud in TEAMS_USER_PREFIXES.items():
        if raw_id.startswith(prefix):
            return MicrosoftTeamsUserIdentifier(raw_id[len(prefix):], raw_id=raw_id, cloud=cloud)
    return UnknownIdentifier(raw_id)


class AcsTelephonyClient(TelephonyClient):
    """Telephony client backed by the ACS Call Automation SDK."""

    def __init__(self, connection_string: str, client: Optional[CallAutomationClient] = None):
        self.client = client or CallAutomationClient.from_connection_string(connection_string)

    async def answer_call(
        self,
        incoming_call_context: str,
        callback_url: str,
        operation_context: Optional[str] = None,
    ) -> str:
        try:
            result = await self.client.answer_call(
                incoming_call_context=incoming_call_context,
                callback_url=callback_url,
                operation_context=operation_context,
            )
        except AzureError as e:
            raise TelephonyError(f"Answer call failed: {e}") from e
        logger.info(f"[TELEPHONY] Answered call - CallConnectionId: {result.call_connection_id}")
        return result.call_connection_id

    async def start_recognizing(self, call_connection_id: str, command: StartRecognizeCommand) -> None:
        call_connection = self.client.get_call_connection(call_connection_id)
        try:
            await call_connection.start_recognizing_media(
                input_type=RecognizeInputType.DTMF,
                target_participant=identifier_from_raw_id(command.target_raw_id),
                play_prompt=FileSource(url=command.prompt_uri),
                interrupt_prompt=command.interrupt_prompt,
                initial_silence_timeout=command.initial_silence_timeout_seconds,
                dtmf_max_tones_to_collect=command.max_tones,
                dtmf_inter_tone_timeout=command.inter_tone_timeout_seconds,
                dtmf_stop_tones=[DtmfTone(tone) for tone in command.stop_tones],
                operation_context=command.operation_context,
            )
        except AzureError as e:
            raise TelephonyError(f"Start recognizing failed: {e}") from e
        logger.debug(
            f"[TELEPHONY] Recognize started - CallConnectionId: {call_connection_id}, "
            f"Menu: {command.menu_id}"
        )

    async def play(self, call_connection_id: str, command: PlayCommand) -> None:
        call_connection = self.client.get_call_connection(call_connection_id)
        try:
            await call_connection.play_media(
                play_source=FileSource(url=command.prompt_uri),
                operation_context=command.operation_context,
            )
        except AzureError as e:
            raise TelephonyError(f"Play failed: {e}") from e

    async def hang_up(self, call_connection_id: str, for_everyone: bool = True) -> None:
        call_connection = self.client.get_call_connection(call_connection_id)
        try:
            await call_connection.hang_up(is_for_everyone=for_everyone)
        except AzureError as e:
            raise TelephonyError(f"Hang up failed: {e}") from e

    async def transfer(self, call_connection_id: str, command: TransferCommand) -> None:
        call_connection = self.client.get_call_connection(call_connection_id)
        try:
            await call_connection.transfer_call_to_participant(
                identifier_from_raw_id(command.target_raw_id),
                operation_context=command.operation_context,
            )
        except AzureError as e:
            raise TelephonyError(f"Transfer failed: {e}") from e

    async def close(self) -> None:
        await self.client.close()

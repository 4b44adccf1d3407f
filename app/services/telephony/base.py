"""Telephony client interface.

The call flow never talks to the provider directly; it produces command
objects and hands them to a client through `execute`. Implementations only
start provider operations; results come back later as callback events.
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.services.telephony.commands import (
    Command,
    HangupCommand,
    PlayCommand,
    StartRecognizeCommand,
    TransferCommand,
)


class TelephonyError(Exception):
    """A provider request failed."""


class TelephonyClient(ABC):
    """Abstract base class for telephony providers."""

    @abstractmethod
    async def answer_call(
        self,
        incoming_call_context: str,
        callback_url: str,
        operation_context: Optional[str] = None,
    ) -> str:
        """Answer an incoming call.

        Returns:
            The call-connection id assigned by the provider.

        Raises:
            TelephonyError: If the call cannot be answered.
        """
        ...

    @abstractmethod
    async def start_recognizing(self, call_connection_id: str, command: StartRecognizeCommand) -> None:
        """Play a prompt and start DTMF recognition."""
        ...

    @abstractmethod
    async def play(self, call_connection_id: str, command: PlayCommand) -> None:
        """Play a prompt to all participants."""
        ...

    @abstractmethod
    async def hang_up(self, call_connection_id: str, for_everyone: bool = True) -> None:
        """Terminate the call."""
        ...

    @abstractmethod
    async def transfer(self, call_connection_id: str, command: TransferCommand) -> None:
        """Transfer the call to another participant."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None

    async def execute(self, call_connection_id: str, command: Command) -> None:
        """Issue a single command for a call."""
        if isinstance(command, StartRecognizeCommand):
            await self.start_recognizing(call_connection_id, command)
        elif isinstance(command, PlayCommand):
            await self.play(call_connection_id, command)
        elif isinstance(command, HangupCommand):
            await self.hang_up(call_connection_id, for_everyone=command.for_everyone)
        elif isinstance(command, TransferCommand):
            await self.transfer(call_connection_id, command)
        else:
            raise TypeError(f"Unsupported command: {type(command).__name__}")

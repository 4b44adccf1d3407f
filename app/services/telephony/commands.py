"""Provider commands issued by the call flow."""
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class StartRecognizeCommand(BaseModel):
    """Play a menu prompt and collect DTMF from the caller."""

    model_config = ConfigDict(frozen=True)

    menu_id: str
    target_raw_id: str
    prompt_uri: str
    operation_context: str
    max_tones: int = 1
    initial_silence_timeout_seconds: int = 5
    inter_tone_timeout_seconds: int = 2
    stop_tones: List[str] = ["asterisk"]
    interrupt_prompt: bool = False


class PlayCommand(BaseModel):
    """Play a prompt to every participant."""

    model_config = ConfigDict(frozen=True)

    prompt_uri: str
    operation_context: str


class HangupCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    for_everyone: bool = True


class TransferCommand(BaseModel):
    """Hand the call to another participant."""

    model_config = ConfigDict(frozen=True)

    target_raw_id: str
    operation_context: Optional[str] = None


Command = Union[StartRecognizeCommand, PlayCommand, HangupCommand, TransferCommand]

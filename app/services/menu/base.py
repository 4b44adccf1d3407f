"""Menu catalog models and provider interface."""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class ActionKind(str, Enum):
    """What a keypress does in a menu."""

    NAVIGATE_TO = "navigate_to"
    INVALID = "invalid"
    TRANSFER_TO_AGENT = "transfer_to_agent"

    def __str__(self) -> str:
        return self.value


class MenuAction(BaseModel):
    """Outcome of resolving a digit against a menu."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    menu_id: Optional[str] = None  # only set for NAVIGATE_TO

    @classmethod
    def navigate_to(cls, menu_id: str) -> "MenuAction":
        return cls(kind=ActionKind.NAVIGATE_TO, menu_id=menu_id)

    @classmethod
    def invalid(cls) -> "MenuAction":
        return cls(kind=ActionKind.INVALID)

    @classmethod
    def transfer_to_agent(cls) -> "MenuAction":
        return cls(kind=ActionKind.TRANSFER_TO_AGENT)


class Menu(BaseModel):
    """A voice prompt and its digit-to-action mapping."""

    model_config = ConfigDict(frozen=True)

    menu_id: str
    prompt: str
    options: Dict[str, MenuAction] = {}


class MenuCatalogData(BaseModel):
    """Everything a provider loads: the menus plus the entry/invalid prompts."""

    model_config = ConfigDict(frozen=True)

    main_menu: str
    invalid_prompt: str
    menus: Dict[str, Menu]


class MenuProvider(ABC):
    """Abstract base class for menu catalog sources."""

    @abstractmethod
    def load(self) -> MenuCatalogData:
        """Load the full catalog."""
        pass

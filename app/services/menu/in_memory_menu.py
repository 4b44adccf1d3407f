"""In-memory menu provider."""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from app.services.menu.base import Menu, MenuAction, MenuCatalogData, MenuProvider

logger = logging.getLogger(__name__)

DEFAULT_MENU_FILE = Path(__file__).parent / "data" / "menus.yaml"


class MenuCatalogError(ValueError):
    """Raised when a catalog file is structurally wrong."""


def _parse_action(menu_id: str, digit: str, raw: Any) -> MenuAction:
    if not isinstance(raw, dict):
        raise MenuCatalogError(f"Menu '{menu_id}' digit {digit}: expected a mapping, got {raw!r}")
    if "navigate_to" in raw:
        return MenuAction.navigate_to(str(raw["navigate_to"]))
    if raw.get("transfer_to_agent"):
        return MenuAction.transfer_to_agent()
    if raw.get("invalid"):
        return MenuAction.invalid()
    raise MenuCatalogError(f"Menu '{menu_id}' digit {digit}: unknown action {raw!r}")


def parse_catalog(data: Dict[str, Any]) -> MenuCatalogData:
    """Build catalog models from the YAML structure."""
    menus: Dict[str, Menu] = {}
    for menu_id, menu_data in (data.get("menus") or {}).items():
        menu_data = menu_data or {}
        options = {
            # Unquoted YAML keys arrive as ints
            str(digit): _parse_action(menu_id, str(digit), action)
            for digit, action in (menu_data.get("options") or {}).items()
        }
        menus[menu_id] = Menu(
            menu_id=menu_id,
            prompt=menu_data.get("prompt", menu_id),
            options=options,
        )

    main_menu = data.get("main_menu", "mainmenu")
    if main_menu not in menus:
        raise MenuCatalogError(f"Main menu '{main_menu}' is not defined")

    for menu in menus.values():
        for digit, action in menu.options.items():
            if action.menu_id is not None and action.menu_id not in menus:
                raise MenuCatalogError(
                    f"Menu '{menu.menu_id}' digit {digit} navigates to unknown menu '{action.menu_id}'"
                )

    return MenuCatalogData(
        main_menu=main_menu,
        invalid_prompt=data.get("invalid_prompt", "invalid"),
        menus=menus,
    )


class InMemoryMenuProvider(MenuProvider):
    """Menu provider backed by a YAML file, cached after first load."""

    def __init__(self, menu_file: Optional[str] = None):
        """Initialize with optional menu file path."""
        self.menu_file = Path(menu_file) if menu_file else DEFAULT_MENU_FILE
        self._catalog: Optional[MenuCatalogData] = None

    def load(self) -> MenuCatalogData:
        """Load the catalog from YAML."""
        if self._catalog is None:
            with open(self.menu_file, "r") as f:
                data = yaml.safe_load(f) or {}
            self._catalog = parse_catalog(data)
            logger.info(
                f"[MENU] Loaded {len(self._catalog.menus)} menus from {self.menu_file}"
            )
        return self._catalog

"""Menu catalog lookups."""
from typing import Optional

from app.services.menu.base import Menu, MenuAction, MenuProvider


class MenuCatalog:
    """Read-only view over the loaded menus."""

    def __init__(self, provider: MenuProvider):
        self.provider = provider
        self._data = provider.load()

    @property
    def main_menu(self) -> str:
        return self._data.main_menu

    @property
    def invalid_prompt(self) -> str:
        return self._data.invalid_prompt

    def get_menu(self, menu_id: str) -> Optional[Menu]:
        """Get a menu by id."""
        return self._data.menus.get(menu_id)

    def prompt_for(self, menu_id: str) -> str:
        """Prompt name for a menu, falling back to the menu id itself."""
        menu = self.get_menu(menu_id)
        return menu.prompt if menu else menu_id

    def resolve(self, menu_id: str, digit: Optional[str]) -> MenuAction:
        """
        Resolve a keypress in a menu.

        Unknown menus, unmapped digits and a missing digit all resolve to
        INVALID.
        """
        menu = self.get_menu(menu_id)
        if menu is None or digit is None:
            return MenuAction.invalid()
        return menu.options.get(digit, MenuAction.invalid())

"""
Theme mode (light/dark/system) and the concrete theme it resolves to.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Literal, Optional

from lawyerzen.client.api import ApiClient
from lawyerzen.client.local_storage import LocalStorage

logger = logging.getLogger(__name__)

ThemeMode = Literal["light", "dark", "system"]
ActualTheme = Literal["light", "dark"]

STORAGE_KEY = "legal-pro-theme"
THEME_MODES = ("light", "dark", "system")


def detect_system_color_scheme() -> ActualTheme:
    """Best-effort terminal background detection via ``COLORFGBG``."""
    colorfgbg = os.environ.get("COLORFGBG", "")
    background = colorfgbg.rsplit(";", 1)[-1]
    if background.isdigit() and (int(background) < 7 or int(background) == 8):
        return "dark"
    return "light"


class ThemeController:
    def __init__(
        self,
        storage: LocalStorage,
        api: Optional[ApiClient] = None,
        *,
        default_theme: ThemeMode = "system",
        storage_key: str = STORAGE_KEY,
        detect_color_scheme: Callable[[], ActualTheme] = detect_system_color_scheme,
    ):
        self.storage = storage
        self.api = api
        self.storage_key = storage_key
        self.detect_color_scheme = detect_color_scheme
        self._listeners: list[Callable[[ActualTheme], None]] = []

        stored = storage.get_item(storage_key)
        self.theme: ThemeMode = stored if stored in THEME_MODES else default_theme
        self.actual_theme: ActualTheme = self._resolve()

    def _resolve(self) -> ActualTheme:
        if self.theme == "system":
            return self.detect_color_scheme()
        return self.theme

    def subscribe(self, listener: Callable[[ActualTheme], None]) -> None:
        """``listener`` receives the concrete theme after every mode change."""
        self._listeners.append(listener)

    def _apply(self) -> None:
        self.actual_theme = self._resolve()
        for listener in self._listeners:
            listener(self.actual_theme)

    def refresh(self) -> ActualTheme:
        """Re-evaluate ``system`` mode against the current OS scheme."""
        self._apply()
        return self.actual_theme

    def set_theme(self, theme: ThemeMode) -> None:
        """Change the mode locally without contacting the backend."""
        if theme not in THEME_MODES:
            raise ValueError(f"Unknown theme mode: {theme}")
        self.theme = theme
        self.storage.set_item(self.storage_key, theme)
        self._apply()

    def set_theme_and_save(self, theme: ThemeMode) -> None:
        self.set_theme(theme)
        if self.api is None:
            return
        try:
            self.api.update_me({"preferences": {"theme": theme}})
        except Exception as e:
            logger.warning(f"Failed to save theme preference: {e}")

    def trigger_theme_change(self) -> ThemeMode:
        # Toggles between the explicit modes; "system" counts as its resolved value.
        new_theme: ThemeMode = "light" if self.actual_theme == "dark" else "dark"
        self.set_theme_and_save(new_theme)
        return new_theme

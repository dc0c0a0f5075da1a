"""
Client-side preference state.

Preferences move through UNINITIALIZED -> LOADED (from the user profile)
-> MUTATED (local edits) -> SAVED (persisted locally, backend sync attempted).
Saving is optimistic: a failed backend call is logged and the local state
stands.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from lawyerzen.client.api import ApiClient
from lawyerzen.client.local_storage import LocalStorage
from lawyerzen.client.theme import THEME_MODES, ThemeController

logger = logging.getLogger(__name__)

STORAGE_KEY = "legal-pro-preferences"

DEFAULT_PREFERENCES = {
    "theme": "system",
    "language": "en-IN",
    "timezone": "Asia/Kolkata",
    "dateFormat": "DD/MM/YYYY",
    "currency": "INR",
}

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "AED": "د.إ",
}

_DATE_FORMATS = {
    "DD/MM/YYYY": "%d/%m/%Y",
    "MM/DD/YYYY": "%m/%d/%Y",
    "YYYY-MM-DD": "%Y-%m-%d",
}


def _is_valid(key: str, value) -> bool:
    if key not in DEFAULT_PREFERENCES:
        return False
    if key == "theme":
        return value in THEME_MODES
    if key == "dateFormat":
        return value in _DATE_FORMATS
    return isinstance(value, str) and bool(value)


class PreferencesState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    MUTATED = "mutated"
    SAVED = "saved"


class PreferencesController:
    def __init__(
        self,
        storage: LocalStorage,
        api: Optional[ApiClient] = None,
        theme: Optional[ThemeController] = None,
    ):
        self.storage = storage
        self.api = api
        self.theme = theme
        self.state = PreferencesState.UNINITIALIZED
        self.preferences: dict = dict(DEFAULT_PREFERENCES)

        cached = storage.get_item(STORAGE_KEY)
        if cached:
            try:
                values = json.loads(cached)
            except json.JSONDecodeError:
                logger.warning("Discarding unreadable cached preferences")
            else:
                if isinstance(values, dict):
                    self.preferences.update(
                        {key: value for key, value in values.items() if _is_valid(key, value)}
                    )

    def load_from_user(self, user: Optional[dict]) -> dict:
        """Adopt the preferences returned by ``/auth/me``."""
        if not user:
            return self.preferences
        stored = user.get("preferences") or {}
        profile = user.get("profile") or {}
        merged = {
            key: stored[key] if _is_valid(key, stored.get(key)) else default
            for key, default in DEFAULT_PREFERENCES.items()
        }
        for key in ("timezone", "currency"):
            if not stored.get(key) and profile.get(key):
                merged[key] = profile[key]
        self.preferences = merged
        self.state = PreferencesState.LOADED
        # A stored "system" leaves any locally chosen theme alone.
        if self.theme is not None and merged["theme"] != "system":
            self.theme.set_theme(merged["theme"])
        return self.preferences

    def update(self, **changes) -> dict:
        unknown = set(changes) - set(DEFAULT_PREFERENCES)
        if unknown:
            raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        invalid = sorted(key for key, value in changes.items() if not _is_valid(key, value))
        if invalid:
            raise ValueError(f"Invalid value for preference(s): {', '.join(invalid)}")
        self.preferences.update(changes)
        self.state = PreferencesState.MUTATED
        return self.preferences

    def save(self, **changes) -> dict:
        if changes:
            self.update(**changes)
        self.storage.set_item(STORAGE_KEY, json.dumps(self.preferences))
        if self.theme is not None and self.preferences["theme"] != self.theme.theme:
            self.theme.set_theme(self.preferences["theme"])
        self.state = PreferencesState.SAVED

        if self.api is not None:
            try:
                self.api.update_preferences(self.preferences)
            except Exception as e:
                logger.warning(f"Failed to sync preferences to backend: {e}")
        return self.preferences

    def format_date(self, value: Union[date, datetime, str, None]) -> str:
        if value is None or value == "":
            return ""
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return ""
        pattern = _DATE_FORMATS.get(self.preferences.get("dateFormat"), _DATE_FORMATS["DD/MM/YYYY"])
        return value.strftime(pattern)

    def currency_symbol(self, currency: Optional[str] = None) -> str:
        return CURRENCY_SYMBOLS.get(currency or self.preferences.get("currency"), "₹")

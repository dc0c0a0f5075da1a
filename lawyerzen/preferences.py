"""
User preference defaults and resolution from a stored user profile.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from lawyerzen.schemas import Preferences

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict = Preferences().model_dump()


def resolve_preferences(user: dict) -> Preferences:
    """Stored preferences over profile fallbacks over defaults."""
    stored = user.get("preferences") or {}
    profile = user.get("profile") or {}
    merged = dict(DEFAULT_PREFERENCES)
    for key in ("timezone", "currency"):
        if profile.get(key):
            merged[key] = profile[key]
    merged.update({key: value for key, value in stored.items() if key in merged and value})
    try:
        return Preferences(**merged)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid stored preferences for user {user.get('id')}: {e}")
        return Preferences()


def merge_preferences(user: dict, changes: dict) -> dict:
    current = resolve_preferences(user).model_dump()
    current.update({key: value for key, value in changes.items() if value is not None})
    return Preferences(**current).model_dump()

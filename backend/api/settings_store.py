"""
Persistent per-user settings backed by the SQLite settings table.

Values are stored as strings: booleans as "true"/"false", enums by value.
Keys never saved fall back to the AppSettings defaults.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import ValidationError

from api.settings_models import AppSettings, SettingsUpdate
from storage.database import get_db

logger = logging.getLogger(__name__)

_DB_KEYS = tuple(AppSettings.model_fields)
_BOOL_KEYS = {k for k, f in AppSettings.model_fields.items() if f.annotation is bool}
_INT_KEYS = {k for k, f in AppSettings.model_fields.items() if f.annotation is int}


def _decode(key: str, raw: str):
    if key in _BOOL_KEYS:
        return raw == "true"
    if key in _INT_KEYS:
        return int(raw)
    return raw


def _encode(val) -> str:
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, Enum):
        return val.value
    return str(val)


def get_settings(user_id: str) -> AppSettings:
    """Return current settings for a user (loaded fresh from SQLite)."""
    all_db = get_db().get_all_settings(user_id)
    values = {}
    for key in _DB_KEYS:
        if key not in all_db:
            continue
        try:
            values[key] = _decode(key, all_db[key])
        except ValueError:
            logger.warning("Ignoring unreadable setting %s for user %s", key, user_id)
    try:
        return AppSettings(**values)
    except ValidationError:
        # A stored value no longer passes validation; drop back to defaults for it
        logger.warning("Stored settings for user %s failed validation", user_id)
        valid = {}
        for key, val in values.items():
            try:
                AppSettings(**{key: val})
                valid[key] = val
            except ValidationError:
                continue
        return AppSettings(**valid)


def update_settings(user_id: str, update: SettingsUpdate) -> AppSettings:
    """Apply partial update and return new settings."""
    db = get_db()
    update_data = update.model_dump(exclude_unset=True)

    for key in _DB_KEYS:
        if key not in update_data:
            continue
        val = update_data[key]
        if val is None:
            db.delete_setting(user_id, key)
        else:
            db.set_setting(user_id, key, _encode(val))

    return get_settings(user_id)


def reset_settings(user_id: str) -> AppSettings:
    """Forget every saved preference and return the defaults."""
    get_db().clear_settings(user_id)
    return AppSettings()

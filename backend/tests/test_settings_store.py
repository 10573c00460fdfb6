"""Tests for the settings store module."""

import tempfile
import os
from unittest.mock import patch

import pytest

from storage.database import Database
from api.settings_models import FontSizeEnum, SettingsUpdate, ThemeEnum
from api import settings_store


@pytest.fixture
def mock_db():
    """Create an isolated Database using a temp file."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        yield Database(db_path=path)
    finally:
        os.unlink(path)


@pytest.fixture
def user_id(mock_db):
    return mock_db.create_user("pat@example.com", "hash")["id"]


class TestGetSettings:
    def test_defaults_when_empty(self, mock_db, user_id):
        with patch.object(settings_store, "get_db", return_value=mock_db):
            s = settings_store.get_settings(user_id)
            assert s.theme == ThemeEnum.LIGHT
            assert s.language == "en"
            assert s.session_timeout == 30
            assert s.data_retention == 365
            assert s.group_by_category is True
            assert s.show_abnormal_only is False

    def test_reads_stored_values(self, mock_db, user_id):
        mock_db.set_setting(user_id, "theme", "dark")
        mock_db.set_setting(user_id, "session_timeout", "60")
        mock_db.set_setting(user_id, "high_contrast", "true")
        mock_db.set_setting(user_id, "timezone", "America/Toronto")

        with patch.object(settings_store, "get_db", return_value=mock_db):
            s = settings_store.get_settings(user_id)
            assert s.theme == ThemeEnum.DARK
            assert s.session_timeout == 60
            assert s.high_contrast is True
            assert s.timezone == "America/Toronto"

    def test_bad_stored_value_falls_back_to_default(self, mock_db, user_id):
        mock_db.set_setting(user_id, "theme", "neon")
        mock_db.set_setting(user_id, "session_timeout", "abc")
        mock_db.set_setting(user_id, "font_size", "large")

        with patch.object(settings_store, "get_db", return_value=mock_db):
            s = settings_store.get_settings(user_id)
            assert s.theme == ThemeEnum.LIGHT
            assert s.session_timeout == 30
            assert s.font_size == FontSizeEnum.LARGE


class TestUpdateSettings:
    def test_updates_db_keys(self, mock_db, user_id):
        with patch.object(settings_store, "get_db", return_value=mock_db):
            update = SettingsUpdate(theme=ThemeEnum.DARK, medication_reminders=False, data_retention=90)
            result = settings_store.update_settings(user_id, update)
            assert result.theme == ThemeEnum.DARK
            assert result.medication_reminders is False
            assert result.data_retention == 90
        assert mock_db.get_setting(user_id, "medication_reminders") == "false"
        assert mock_db.get_setting(user_id, "theme") == "dark"

    def test_clear_to_null_restores_default(self, mock_db, user_id):
        mock_db.set_setting(user_id, "language", "fr")
        with patch.object(settings_store, "get_db", return_value=mock_db):
            result = settings_store.update_settings(user_id, SettingsUpdate(language=None))
            assert result.language == "en"
        assert mock_db.get_setting(user_id, "language") is None

    def test_unset_fields_untouched(self, mock_db, user_id):
        mock_db.set_setting(user_id, "language", "fr")
        with patch.object(settings_store, "get_db", return_value=mock_db):
            result = settings_store.update_settings(user_id, SettingsUpdate(theme=ThemeEnum.SYSTEM))
            assert result.language == "fr"

    def test_reset(self, mock_db, user_id):
        mock_db.set_setting(user_id, "theme", "dark")
        with patch.object(settings_store, "get_db", return_value=mock_db):
            result = settings_store.reset_settings(user_id)
            assert result.theme == ThemeEnum.LIGHT
        assert mock_db.get_all_settings(user_id) == {}

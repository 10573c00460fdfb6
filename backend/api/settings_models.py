"""Pydantic models for the /settings endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ThemeEnum(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class TimeFormatEnum(str, Enum):
    TWELVE_HOUR = "12h"
    TWENTY_FOUR_HOUR = "24h"


class ExportFormatEnum(str, Enum):
    JSON = "json"
    CSV = "csv"


class FontSizeEnum(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class AppSettings(BaseModel):
    """Per-user preferences, defaults applied for anything never saved."""

    # Appearance
    theme: ThemeEnum = ThemeEnum.LIGHT
    # Localization
    language: str = Field(default="en", max_length=10)
    timezone: str = Field(default="UTC", max_length=64)
    date_format: str = Field(default="MMM dd, yyyy", max_length=32)
    time_format: TimeFormatEnum = TimeFormatEnum.TWELVE_HOUR
    # Health data
    show_abnormal_only: bool = False
    group_by_category: bool = True
    # Notifications
    notifications_enabled: bool = True
    email_notifications: bool = True
    medication_reminders: bool = True
    appointment_reminders: bool = True
    health_alerts: bool = True
    # Privacy
    session_timeout: int = Field(default=30, ge=5, le=240)
    # Data management
    data_retention: int = Field(default=365, ge=30)
    export_format: ExportFormatEnum = ExportFormatEnum.JSON
    # Accessibility
    font_size: FontSizeEnum = FontSizeEnum.MEDIUM
    high_contrast: bool = False
    reduced_motion: bool = False


class SettingsUpdate(BaseModel):
    """Partial update for settings."""

    theme: Optional[ThemeEnum] = None
    language: Optional[str] = Field(default=None, max_length=10)
    timezone: Optional[str] = Field(default=None, max_length=64)
    date_format: Optional[str] = Field(default=None, max_length=32)
    time_format: Optional[TimeFormatEnum] = None
    show_abnormal_only: Optional[bool] = None
    group_by_category: Optional[bool] = None
    notifications_enabled: Optional[bool] = None
    email_notifications: Optional[bool] = None
    medication_reminders: Optional[bool] = None
    appointment_reminders: Optional[bool] = None
    health_alerts: Optional[bool] = None
    session_timeout: Optional[int] = Field(default=None, ge=5, le=240)
    data_retention: Optional[int] = Field(default=None, ge=30)
    export_format: Optional[ExportFormatEnum] = None
    font_size: Optional[FontSizeEnum] = None
    high_contrast: Optional[bool] = None
    reduced_motion: Optional[bool] = None

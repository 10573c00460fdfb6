"""Pydantic models for the /alerts endpoints."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AlertTypeEnum(str, Enum):
    HEALTH = "health"
    MEDICATION = "medication"
    APPOINTMENT = "appointment"
    LAB = "lab"
    GENERAL = "general"


class AlertSeverityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatusEnum(str, Enum):
    ACTIVE = "active"
    READ = "read"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class AlertCreate(BaseModel):
    """Request body for POST /alerts."""

    title: str = Field(min_length=1, max_length=200)
    alert_type: AlertTypeEnum = AlertTypeEnum.HEALTH
    severity: AlertSeverityEnum = AlertSeverityEnum.MEDIUM
    message: Optional[str] = Field(default=None, max_length=2000)
    data: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[dt.datetime] = None


class AlertUpdate(BaseModel):
    """Partial update for an alert."""

    status: Optional[AlertStatusEnum] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=2000)


class AlertResponse(BaseModel):
    id: str
    alert_type: str
    severity: str
    title: str
    message: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    status: str
    expires_at: Optional[str] = None
    created_at: str
    updated_at: str

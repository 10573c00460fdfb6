"""Pydantic models for the /request-batches endpoints."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class RequestTypeEnum(str, Enum):
    COMPLETE_RECORDS = "complete_records"
    LAB_RESULTS = "lab_results"
    MEDICATIONS = "medications"
    PROCEDURES = "procedures"
    IMAGING = "imaging"
    VISITS = "visits"


class RecordTypeEnum(str, Enum):
    LAB_RESULTS = "lab_results"
    MEDICATIONS = "medications"
    PROCEDURES = "procedures"
    IMAGING = "imaging"
    VISITS = "visits"
    ALLERGIES = "allergies"
    IMMUNIZATIONS = "immunizations"
    VITAL_SIGNS = "vital_signs"


class PriorityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RequestStatusEnum(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ContactPreferenceEnum(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"


class DeliveryMethodEnum(str, Enum):
    SECURE_PORTAL = "secure_portal"
    EMAIL = "email"
    MAIL = "mail"
    FAX = "fax"


class DateRange(BaseModel):
    start: Optional[dt.date] = None
    end: Optional[dt.date] = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "DateRange":
        if self.start and self.end and self.end < self.start:
            raise ValueError("End date cannot be before start date")
        return self


class RequestCreate(BaseModel):
    """Request body for POST /request-batches.

    ``provider_name`` may be omitted when ``provider_id`` names a saved provider.
    """

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    request_type: RequestTypeEnum
    provider_id: Optional[str] = None
    provider_name: Optional[str] = Field(default=None, max_length=200)
    record_types: list[RecordTypeEnum] = Field(min_length=1)
    date_range: Optional[DateRange] = None
    priority: PriorityEnum = PriorityEnum.MEDIUM
    urgent_reason: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    contact_preference: ContactPreferenceEnum = ContactPreferenceEnum.EMAIL
    delivery_method: DeliveryMethodEnum = DeliveryMethodEnum.SECURE_PORTAL

    @model_validator(mode="after")
    def _provider_given(self) -> "RequestCreate":
        if not self.provider_id and not (self.provider_name and self.provider_name.strip()):
            raise ValueError("A provider is required")
        # urgent_reason only means something for high priority requests
        if self.priority != PriorityEnum.HIGH:
            self.urgent_reason = None
        return self


class RequestUpdate(BaseModel):
    """Partial update for a request. A status change goes through the workflow."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    priority: Optional[PriorityEnum] = None
    urgent_reason: Optional[str] = Field(default=None, max_length=1000)
    contact_preference: Optional[ContactPreferenceEnum] = None
    delivery_method: Optional[DeliveryMethodEnum] = None
    date_range: Optional[DateRange] = None
    status: Optional[RequestStatusEnum] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    reason: Optional[str] = Field(default=None, max_length=1000)


class CancelRequest(BaseModel):
    """Optional body for PUT /request-batches/{id}/cancel."""

    reason: Optional[str] = Field(default=None, max_length=1000)


class ProviderContact(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    fax: Optional[str] = None
    email: Optional[str] = None


class RequestDocument(BaseModel):
    id: str
    filename: str
    content_type: Optional[str] = None
    size: int
    uploaded_at: str


class RequestResponse(BaseModel):
    id: str
    tracking_number: str
    title: str
    description: Optional[str] = None
    request_type: str
    provider_id: Optional[str] = None
    provider_name: str
    record_types: list[str] = Field(default_factory=list)
    date_range: Optional[dict[str, Optional[str]]] = None
    priority: str
    urgent_reason: Optional[str] = None
    notes: Optional[str] = None
    contact_preference: str
    delivery_method: str
    status: str
    progress: int
    estimated_completion: Optional[str] = None
    due_date: Optional[str] = None
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    provider_contact: Optional[ProviderContact] = None
    documents: list[RequestDocument] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    items: list[RequestResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class TimelineEvent(BaseModel):
    id: int
    status: str
    title: str
    description: Optional[str] = None
    timestamp: str
    current: bool = False


class RequestStats(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    cancelled: int
    average_completion_days: Optional[float] = None
    success_rate: float


def to_response(
    row: dict[str, Any],
    provider: Optional[dict[str, Any]] = None,
    documents: Optional[list[dict[str, Any]]] = None,
) -> RequestResponse:
    """Build the API view of a request row."""
    data = {k: v for k, v in row.items() if k in RequestResponse.model_fields}
    if row.get("date_start") or row.get("date_end"):
        data["date_range"] = {"start": row.get("date_start"), "end": row.get("date_end")}
    if provider:
        data["provider_contact"] = ProviderContact(
            id=provider["id"],
            name=provider["name"],
            phone=provider.get("phone"),
            fax=provider.get("fax"),
            email=provider.get("email"),
        )
    if documents:
        data["documents"] = [RequestDocument(**{k: d[k] for k in RequestDocument.model_fields if k in d}) for d in documents]
    return RequestResponse(**data)

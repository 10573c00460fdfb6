"""Pydantic models and reference lists for the /providers and /facilities endpoints."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

_PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")


class ProviderTypeEnum(str, Enum):
    INDIVIDUAL = "individual"
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    LABORATORY = "laboratory"
    IMAGING_CENTER = "imaging_center"
    PHARMACY = "pharmacy"
    WALK_IN_CLINIC = "walk_in_clinic"
    SPECIALIST_OFFICE = "specialist_office"


SPECIALTIES = [
    "Family Medicine",
    "Internal Medicine",
    "Pediatrics",
    "Obstetrics & Gynecology",
    "Psychiatry",
    "General Surgery",
    "Orthopedic Surgery",
    "Cardiology",
    "Dermatology",
    "Neurology",
    "Ophthalmology",
    "Otolaryngology (ENT)",
    "Urology",
    "Radiology",
    "Anesthesiology",
    "Emergency Medicine",
    "Pathology",
    "Endocrinology",
    "Gastroenterology",
    "Hematology",
    "Infectious Diseases",
    "Nephrology",
    "Oncology",
    "Respirology",
    "Rheumatology",
    "Sports Medicine",
]

LANGUAGES = [
    "English", "French", "Mandarin", "Cantonese", "Punjabi", "Spanish",
    "Tagalog", "Arabic", "Italian", "Portuguese", "Urdu", "German",
    "Vietnamese", "Russian", "Polish", "Korean", "Tamil", "Persian (Farsi)",
    "Hindi", "Gujarati",
]

# Provider fields kept in the contact_json blob rather than in columns
CONTACT_FIELDS = (
    "type", "specialty", "address", "languages", "accepts_new_patients",
    "virtual_care_available", "hours", "services", "notes", "website",
    "license_number", "organization_name",
)


def _check_phone(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not _PHONE_RE.match(v):
        raise ValueError("Please enter a valid phone number")
    return v


class Address(BaseModel):
    street: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    province: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)


class ProviderCreate(BaseModel):
    """Request body for POST /providers."""

    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    fax: Optional[str] = Field(default=None, max_length=30)
    email: Optional[EmailStr] = None
    type: ProviderTypeEnum = ProviderTypeEnum.INDIVIDUAL
    specialty: Optional[str] = Field(default=None, max_length=100)
    address: Optional[Address] = None
    languages: list[str] = Field(default_factory=list)
    accepts_new_patients: Optional[bool] = None
    virtual_care_available: Optional[bool] = None
    hours: Optional[str] = Field(default=None, max_length=500)
    services: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[str] = Field(default=None, max_length=300)
    license_number: Optional[str] = Field(default=None, max_length=50)
    organization_name: Optional[str] = Field(default=None, max_length=200)
    facility_ids: list[str] = Field(default_factory=list)

    @field_validator("phone", "fax")
    @classmethod
    def _valid_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class ProviderUpdate(BaseModel):
    """Partial update for a provider."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    fax: Optional[str] = Field(default=None, max_length=30)
    email: Optional[EmailStr] = None
    type: Optional[ProviderTypeEnum] = None
    specialty: Optional[str] = Field(default=None, max_length=100)
    address: Optional[Address] = None
    languages: Optional[list[str]] = None
    accepts_new_patients: Optional[bool] = None
    virtual_care_available: Optional[bool] = None
    hours: Optional[str] = Field(default=None, max_length=500)
    services: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[str] = Field(default=None, max_length=300)
    license_number: Optional[str] = Field(default=None, max_length=50)
    organization_name: Optional[str] = Field(default=None, max_length=200)
    facility_ids: Optional[list[str]] = None

    @field_validator("phone", "fax")
    @classmethod
    def _valid_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class ProviderResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    fax: Optional[str] = None
    email: Optional[str] = None
    type: str = ProviderTypeEnum.INDIVIDUAL.value
    specialty: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    languages: list[str] = Field(default_factory=list)
    accepts_new_patients: Optional[bool] = None
    virtual_care_available: Optional[bool] = None
    hours: Optional[str] = None
    services: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    website: Optional[str] = None
    license_number: Optional[str] = None
    organization_name: Optional[str] = None
    facility_ids: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ProviderReference(BaseModel):
    provider_types: list[str]
    specialties: list[str]
    languages: list[str]


class FacilityCreate(BaseModel):
    """Request body for POST /facilities."""

    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[Address] = None

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class FacilityResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    address: dict[str, Any] = Field(default_factory=dict)
    provider_ids: list[str] = Field(default_factory=list)
    created_at: str


def flatten_provider(row: dict[str, Any]) -> ProviderResponse:
    """Merge the contact_json blob into the top-level provider fields."""
    contact = row.get("contact_json") or {}
    fields = {k: contact[k] for k in CONTACT_FIELDS if contact.get(k) is not None}
    return ProviderResponse(
        id=row["id"],
        name=row["name"],
        phone=row.get("phone"),
        fax=row.get("fax"),
        email=row.get("email"),
        facility_ids=row.get("facility_ids") or [],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        **fields,
    )


def split_contact(data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a provider payload into (column fields, contact_json fields)."""
    contact = {k: data[k] for k in CONTACT_FIELDS if k in data}
    columns = {k: v for k, v in data.items() if k not in CONTACT_FIELDS}
    return columns, contact

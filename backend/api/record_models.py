"""Pydantic models for the health record categories."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from health.reference_ranges import validate_vital


class HealthCategory(str, Enum):
    CONDITIONS = "conditions"
    MEDICATIONS = "medications"
    LABS = "labs"
    VITALS = "vitals"
    PROCEDURES = "procedures"


class ClinicalStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RESOLVED = "resolved"


class VerificationStatusEnum(str, Enum):
    CONFIRMED = "confirmed"
    PROVISIONAL = "provisional"
    DIFFERENTIAL = "differential"


class MedicationStatusEnum(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISCONTINUED = "discontinued"
    COMPLETED = "completed"


class MedicationTypeEnum(str, Enum):
    PRESCRIPTION = "prescription"
    OVER_THE_COUNTER = "over_the_counter"
    SUPPLEMENT = "supplement"


class VitalTypeEnum(str, Enum):
    BLOOD_PRESSURE = "blood_pressure"
    HEART_RATE = "heart_rate"
    TEMPERATURE = "temperature"
    WEIGHT = "weight"
    HEIGHT = "height"
    BMI = "bmi"
    OXYGEN_SATURATION = "oxygen_saturation"
    RESPIRATORY_RATE = "respiratory_rate"


class ProcedureTypeEnum(str, Enum):
    DIAGNOSTIC = "diagnostic"
    THERAPEUTIC = "therapeutic"
    SURGICAL = "surgical"
    PREVENTIVE = "preventive"
    OTHER = "other"


class ProcedureStatusEnum(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# --- Conditions ---


class ConditionCreate(BaseModel):
    """Request body for POST /health-data/conditions.

    Either ``name`` or ``disease_id`` must be given; a catalog entry fills in
    the missing name and ICD-10 code.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    icd10_code: Optional[str] = Field(default=None, max_length=20)
    disease_id: Optional[str] = None
    onset_date: Optional[dt.date] = None
    clinical_status: ClinicalStatusEnum = ClinicalStatusEnum.ACTIVE
    verification_status: VerificationStatusEnum = VerificationStatusEnum.PROVISIONAL
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _require_name_or_disease(self) -> "ConditionCreate":
        if not self.name and not self.disease_id:
            raise ValueError("Condition name is required")
        return self


class ConditionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    icd10_code: Optional[str] = Field(default=None, max_length=20)
    disease_id: Optional[str] = None
    onset_date: Optional[dt.date] = None
    clinical_status: Optional[ClinicalStatusEnum] = None
    verification_status: Optional[VerificationStatusEnum] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class ConditionResponse(BaseModel):
    id: str
    user_id: str
    name: str
    icd10_code: Optional[str] = None
    disease_id: Optional[str] = None
    onset_date: Optional[str] = None
    clinical_status: str
    verification_status: str
    notes: Optional[str] = None
    created_at: str
    updated_at: str


# --- Medications ---


def _check_date_order(start: Optional[dt.date], end: Optional[dt.date], label: str) -> None:
    if start and end and end < start:
        raise ValueError(f"{label} cannot be before start date")


class MedicationCreate(BaseModel):
    """Request body for POST /health-data/medications."""

    name: str = Field(min_length=1, max_length=200)
    generic_name: Optional[str] = Field(default=None, max_length=200)
    dosage: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    status: MedicationStatusEnum = MedicationStatusEnum.ACTIVE
    type: MedicationTypeEnum = MedicationTypeEnum.PRESCRIPTION
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    prescriber: Optional[str] = Field(default=None, max_length=200)
    instructions: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _end_after_start(self) -> "MedicationCreate":
        _check_date_order(self.start_date, self.end_date, "End date")
        return self


class MedicationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    generic_name: Optional[str] = Field(default=None, max_length=200)
    dosage: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    status: Optional[MedicationStatusEnum] = None
    type: Optional[MedicationTypeEnum] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    prescriber: Optional[str] = Field(default=None, max_length=200)
    instructions: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _end_after_start(self) -> "MedicationUpdate":
        _check_date_order(self.start_date, self.end_date, "End date")
        return self


class MedicationResponse(BaseModel):
    id: str
    user_id: str
    name: str
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    status: str
    type: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    prescriber: Optional[str] = None
    instructions: Optional[str] = None
    created_at: str
    updated_at: str


# --- Labs ---


class LabCreate(BaseModel):
    """Request body for POST /health-data/labs."""

    test_name: str = Field(min_length=1, max_length=200)
    value: float
    unit: Optional[str] = Field(default=None, max_length=50)
    reference_range: Optional[str] = Field(default=None, max_length=50)
    category: str = Field(default="Other", max_length=100)
    observed: dt.date = Field(default_factory=dt.date.today)
    provider: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=2000)


class LabUpdate(BaseModel):
    test_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    value: Optional[float] = None
    unit: Optional[str] = Field(default=None, max_length=50)
    reference_range: Optional[str] = Field(default=None, max_length=50)
    category: Optional[str] = Field(default=None, max_length=100)
    observed: Optional[dt.date] = None
    provider: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=2000)


class LabResponse(BaseModel):
    id: str
    user_id: str
    test_name: str
    value: float
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    category: Optional[str] = None
    observed: Optional[str] = None
    provider: Optional[str] = None
    notes: Optional[str] = None
    is_abnormal: bool = False
    severity: Optional[str] = None
    created_at: str
    updated_at: str


# --- Vitals ---


class VitalCreate(BaseModel):
    """Request body for POST /health-data/vitals.

    Blood pressure takes ``systolic`` and ``diastolic``; every other type
    takes ``value``.
    """

    type: VitalTypeEnum
    value: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    unit: Optional[str] = Field(default=None, max_length=20)
    observed: dt.datetime = Field(default_factory=_utcnow)
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _check_reading(self) -> "VitalCreate":
        validate_vital(self.type.value, self.value, self.systolic, self.diastolic)
        return self


class VitalUpdate(BaseModel):
    type: Optional[VitalTypeEnum] = None
    value: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    unit: Optional[str] = Field(default=None, max_length=20)
    observed: Optional[dt.datetime] = None
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=2000)


class VitalResponse(BaseModel):
    id: str
    user_id: str
    type: str
    value: Optional[float] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    unit: Optional[str] = None
    observed: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    is_abnormal: bool = False
    severity: Optional[str] = None
    created_at: str
    updated_at: str


# --- Procedures ---


class ProcedureCreate(BaseModel):
    """Request body for POST /health-data/procedures."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: ProcedureTypeEnum = ProcedureTypeEnum.DIAGNOSTIC
    status: ProcedureStatusEnum = ProcedureStatusEnum.SCHEDULED
    date: Optional[dt.date] = None
    location: Optional[str] = Field(default=None, max_length=200)
    provider: Optional[str] = Field(default=None, max_length=200)
    duration: Optional[str] = Field(default=None, max_length=50)
    outcome: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class ProcedureUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: Optional[ProcedureTypeEnum] = None
    status: Optional[ProcedureStatusEnum] = None
    date: Optional[dt.date] = None
    location: Optional[str] = Field(default=None, max_length=200)
    provider: Optional[str] = Field(default=None, max_length=200)
    duration: Optional[str] = Field(default=None, max_length=50)
    outcome: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class ProcedureResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    type: str
    status: str
    date: Optional[str] = None
    location: Optional[str] = None
    provider: Optional[str] = None
    duration: Optional[str] = None
    outcome: Optional[str] = None
    notes: Optional[str] = None
    created_at: str
    updated_at: str


class DiseaseFact(BaseModel):
    id: str
    name: str
    code: str


class RecordDeleteResponse(BaseModel):
    deleted: bool
    id: str

"""Health record endpoints: per-category CRUD, aggregate reads and the disease catalog."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from api.deps import db_call, get_user_id
from api.phi_audit import log_phi_access
from api.record_models import (
    ConditionCreate,
    ConditionResponse,
    ConditionUpdate,
    DiseaseFact,
    HealthCategory,
    LabCreate,
    LabResponse,
    LabUpdate,
    MedicationCreate,
    MedicationResponse,
    MedicationUpdate,
    ProcedureCreate,
    ProcedureResponse,
    ProcedureUpdate,
    RecordDeleteResponse,
    VitalCreate,
    VitalResponse,
    VitalUpdate,
)
from health.catalog import DISEASE_FACTS, get_disease_fact
from health.reference_ranges import (
    classify_lab,
    classify_vital,
    default_vital_unit,
    validate_vital,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health-data"])

_CATEGORIES = [c.value for c in HealthCategory]
_FLAGGED_CATEGORIES = ("labs", "vitals")

# Columns that may not be cleared with an explicit null
_REQUIRED_COLUMNS = {
    "conditions": {"name", "clinical_status", "verification_status"},
    "medications": {"name", "status", "type"},
    "labs": {"test_name", "value"},
    "vitals": {"type"},
    "procedures": {"name", "type", "status"},
}

_ALERT_TYPES = {"labs": "lab", "vitals": "health"}


def _check_category(category: str) -> str:
    if category not in _CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Unknown health data category: {category}")
    return category


def _apply_catalog(data: dict[str, Any], only_missing: bool = True) -> dict[str, Any]:
    """Fill a condition's name and ICD-10 code from the disease catalog."""
    disease_id = data.get("disease_id")
    if not disease_id:
        return data
    fact = get_disease_fact(disease_id)
    if fact is None:
        raise HTTPException(status_code=400, detail=f"Unknown disease_id: {disease_id}")
    if not data.get("name") or not only_missing:
        data["name"] = fact["name"]
    if not data.get("icd10_code") or not only_missing:
        data["icd10_code"] = fact["code"]
    return data


def _classify(category: str, record: dict[str, Any]) -> dict[str, Any]:
    """Return the derived is_abnormal/severity columns for a lab or vital."""
    if category == "labs":
        result = classify_lab(record.get("value"), record.get("reference_range"))
    else:
        result = classify_vital(
            record["type"], record.get("value"), record.get("systolic"), record.get("diastolic")
        )
    return {"is_abnormal": result.is_abnormal, "severity": result.severity}


def _describe_reading(category: str, record: dict[str, Any]) -> str:
    if category == "labs":
        unit = f" {record['unit']}" if record.get("unit") else ""
        ref = f" (reference {record['reference_range']})" if record.get("reference_range") else ""
        return f"{record['test_name']} result {record['value']:g}{unit}{ref} is outside the normal range."
    label = record["type"].replace("_", " ")
    if record["type"] == "blood_pressure":
        reading = f"{record['systolic']:g}/{record['diastolic']:g}"
    else:
        reading = f"{record['value']:g}"
    unit = f" {record['unit']}" if record.get("unit") else ""
    return f"Your {label} reading of {reading}{unit} needs attention."


async def _raise_abnormal_alert(user_id: str, category: str, record: dict[str, Any]) -> None:
    if category not in _FLAGGED_CATEGORIES or record.get("severity") != "high":
        return
    name = record["test_name"] if category == "labs" else record["type"].replace("_", " ").title()
    await db_call(
        "create_alert",
        user_id,
        title=f"Abnormal {name}",
        alert_type=_ALERT_TYPES[category],
        severity="high",
        message=_describe_reading(category, record),
        data={"category": category, "record_id": record["id"]},
    )
    logger.info("Raised high-severity alert for %s record %s", category, record["id"])


def _prepare_create(category: str, data: dict[str, Any]) -> dict[str, Any]:
    if category == "conditions":
        data = _apply_catalog(data)
    elif category == "vitals":
        data["unit"] = data.get("unit") or default_vital_unit(data["type"])
    if category in _FLAGGED_CATEGORIES:
        data.update(_classify(category, data))
    return data


def _prepare_update(category: str, existing: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for key in _REQUIRED_COLUMNS[category]:
        if key in updates and updates[key] is None:
            raise HTTPException(status_code=422, detail=f"{key} cannot be empty.")

    merged = {**existing, **updates}

    if category == "conditions" and updates.get("disease_id"):
        updates = _apply_catalog(updates, only_missing=True)
    elif category == "medications":
        start, end = merged.get("start_date"), merged.get("end_date")
        if start and end and str(end)[:10] < str(start)[:10]:
            raise HTTPException(status_code=422, detail="End date cannot be before start date")
    elif category == "vitals":
        if "type" in updates and "unit" not in updates:
            updates["unit"] = default_vital_unit(updates["type"])
        try:
            validate_vital(merged["type"], merged.get("value"), merged.get("systolic"), merged.get("diastolic"))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    if category in _FLAGGED_CATEGORIES:
        updates.update(_classify(category, {**existing, **updates}))
    return updates


def _add_category_routes(
    category: str,
    create_model: type[BaseModel],
    update_model: type[BaseModel],
    response_model: type[BaseModel],
) -> None:
    """Register list/create/get/update/delete for one record category."""
    path = f"/health-data/{category}"

    @router.get(path, response_model=list[response_model], name=f"list_{category}")
    async def list_records(
        request: Request,
        search: Optional[str] = Query(None, max_length=200),
        status: Optional[str] = Query(None),
        abnormal_only: bool = Query(False),
        limit: Optional[int] = Query(None, ge=1, le=1000),
    ):
        user_id = get_user_id(request)
        records = await db_call(
            "list_records", category, user_id,
            search=search, status=status, abnormal_only=abnormal_only, limit=limit,
        )
        await log_phi_access(request, "list_records", category)
        return records

    @router.post(path, response_model=response_model, status_code=201, name=f"create_{category[:-1]}")
    async def create_record(request: Request, body: create_model):
        user_id = get_user_id(request)
        data = _prepare_create(category, body.model_dump(mode="json"))
        record = await db_call("create_record", category, user_id, data)
        await _raise_abnormal_alert(user_id, category, record)
        await log_phi_access(request, "create_record", category, record["id"])
        return record

    @router.get(f"{path}/{{record_id}}", response_model=response_model, name=f"get_{category[:-1]}")
    async def get_record(request: Request, record_id: str):
        user_id = get_user_id(request)
        record = await db_call("get_record", category, user_id, record_id)
        if not record:
            raise HTTPException(status_code=404, detail="Record not found.")
        await log_phi_access(request, "view_record", category, record_id)
        return record

    @router.api_route(
        f"{path}/{{record_id}}",
        methods=["PUT", "PATCH"],
        response_model=response_model,
        name=f"update_{category[:-1]}",
    )
    async def update_record(request: Request, record_id: str, body: update_model):
        user_id = get_user_id(request)
        existing = await db_call("get_record", category, user_id, record_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Record not found.")
        updates = _prepare_update(category, existing, body.model_dump(mode="json", exclude_unset=True))
        record = await db_call("update_record", category, user_id, record_id, updates)
        if not record:
            raise HTTPException(status_code=404, detail="Record not found.")
        await log_phi_access(request, "update_record", category, record_id)
        return record

    @router.delete(f"{path}/{{record_id}}", response_model=RecordDeleteResponse, name=f"delete_{category[:-1]}")
    async def delete_record(request: Request, record_id: str):
        user_id = get_user_id(request)
        deleted = await db_call("delete_record", category, user_id, record_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Record not found.")
        await log_phi_access(request, "delete_record", category, record_id)
        return RecordDeleteResponse(deleted=True, id=record_id)


@router.get("/facts/diseases", response_model=list[DiseaseFact])
async def list_disease_facts():
    return DISEASE_FACTS


# Aggregate reads. These must be registered before /profile/me/{category}.


@router.get("/profile/me/health-data")
async def get_all_health_data(request: Request):
    user_id = get_user_id(request)
    data = {}
    for category in _CATEGORIES:
        data[category] = await db_call("list_records", category, user_id)
    await log_phi_access(request, "list_records", "health_data")
    return data


@router.get("/profile/me/health-data/abnormal")
async def get_abnormal_health_data(request: Request):
    user_id = get_user_id(request)
    data = {}
    for category in _FLAGGED_CATEGORIES:
        data[category] = await db_call("list_records", category, user_id, abnormal_only=True)
    await log_phi_access(request, "list_abnormal", "health_data")
    return data


@router.get("/profile/me/health-data/abnormal/{category}")
async def get_abnormal_category(request: Request, category: str):
    user_id = get_user_id(request)
    _check_category(category)
    if category not in _FLAGGED_CATEGORIES:
        raise HTTPException(
            status_code=404,
            detail="Abnormal flags are only kept for labs and vitals.",
        )
    records = await db_call("list_records", category, user_id, abnormal_only=True)
    await log_phi_access(request, "list_abnormal", category)
    return records


@router.get("/profile/me/health-data/{category}")
async def get_health_data_category(request: Request, category: str):
    user_id = get_user_id(request)
    _check_category(category)
    records = await db_call("list_records", category, user_id)
    await log_phi_access(request, "list_records", category)
    return records


_add_category_routes("conditions", ConditionCreate, ConditionUpdate, ConditionResponse)
_add_category_routes("medications", MedicationCreate, MedicationUpdate, MedicationResponse)
_add_category_routes("labs", LabCreate, LabUpdate, LabResponse)
_add_category_routes("vitals", VitalCreate, VitalUpdate, VitalResponse)
_add_category_routes("procedures", ProcedureCreate, ProcedureUpdate, ProcedureResponse)


@router.get("/profile/me/{category}")
async def get_my_category(request: Request, category: str):
    """Read alias used by the client's MY_CONDITIONS, MY_LABS, ... endpoints."""
    user_id = get_user_id(request)
    _check_category(category)
    records = await db_call("list_records", category, user_id)
    await log_phi_access(request, "list_records", category)
    return records

"""Provider and facility endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from api.deps import db_call, get_user_id
from api.provider_models import (
    LANGUAGES,
    SPECIALTIES,
    FacilityCreate,
    FacilityResponse,
    ProviderCreate,
    ProviderReference,
    ProviderResponse,
    ProviderTypeEnum,
    ProviderUpdate,
    flatten_provider,
    split_contact,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["providers"])


@router.get("/providers/reference", response_model=ProviderReference)
async def get_provider_reference():
    return ProviderReference(
        provider_types=[t.value for t in ProviderTypeEnum],
        specialties=SPECIALTIES,
        languages=LANGUAGES,
    )


@router.get("/providers", response_model=list[ProviderResponse])
async def list_providers(
    request: Request,
    name: Optional[str] = Query(None, max_length=200),
):
    user_id = get_user_id(request)
    rows = await db_call("list_providers", user_id, name=name)
    return [flatten_provider(row) for row in rows]


@router.post("/providers", response_model=ProviderResponse, status_code=201)
async def create_provider(request: Request, body: ProviderCreate):
    user_id = get_user_id(request)
    columns, contact = split_contact(body.model_dump(mode="json", exclude_none=True))
    row = await db_call(
        "create_provider",
        user_id,
        columns["name"],
        phone=columns.get("phone"),
        fax=columns.get("fax"),
        email=columns.get("email"),
        contact=contact,
        facility_ids=columns.get("facility_ids") or [],
    )
    logger.info("Created provider %s", row["id"])
    return flatten_provider(row)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
async def get_provider(request: Request, provider_id: str):
    user_id = get_user_id(request)
    row = await db_call("get_provider", user_id, provider_id)
    if not row:
        raise HTTPException(status_code=404, detail="Provider not found.")
    return flatten_provider(row)


@router.api_route("/providers/{provider_id}", methods=["PUT", "PATCH"], response_model=ProviderResponse)
async def update_provider(request: Request, provider_id: str, body: ProviderUpdate):
    user_id = get_user_id(request)
    existing = await db_call("get_provider", user_id, provider_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Provider not found.")

    updates = body.model_dump(mode="json", exclude_unset=True)
    if "name" in updates and updates["name"] is None:
        raise HTTPException(status_code=422, detail="name cannot be empty.")
    columns, contact_updates = split_contact(updates)

    kwargs = dict(columns)
    if contact_updates:
        contact = dict(existing.get("contact_json") or {})
        for key, val in contact_updates.items():
            if val is None:
                contact.pop(key, None)
            else:
                contact[key] = val
        kwargs["contact_json"] = contact

    row = await db_call("update_provider", user_id, provider_id, **kwargs)
    if not row:
        raise HTTPException(status_code=404, detail="Provider not found.")
    return flatten_provider(row)


@router.delete("/providers/{provider_id}")
async def delete_provider(request: Request, provider_id: str):
    """Delete a provider. Requests that named it keep their provider_name."""
    user_id = get_user_id(request)
    deleted = await db_call("delete_provider", user_id, provider_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Provider not found.")
    return {"deleted": True, "id": provider_id}


# --- Facilities ---


@router.get("/facilities", response_model=list[FacilityResponse])
async def list_facilities(
    request: Request,
    name: Optional[str] = Query(None, max_length=200),
):
    user_id = get_user_id(request)
    return await db_call("list_facilities", user_id, name=name)


@router.post("/facilities", response_model=FacilityResponse, status_code=201)
async def create_facility(request: Request, body: FacilityCreate):
    user_id = get_user_id(request)
    address = body.address.model_dump(exclude_none=True) if body.address else None
    return await db_call("create_facility", user_id, body.name, phone=body.phone, address=address)


@router.get("/facilities/{facility_id}", response_model=FacilityResponse)
async def get_facility(request: Request, facility_id: str):
    user_id = get_user_id(request)
    facility = await db_call("get_facility", user_id, facility_id)
    if not facility:
        raise HTTPException(status_code=404, detail="Facility not found.")
    return facility


@router.post("/facilities/{facility_id}/providers/{provider_id}", response_model=FacilityResponse)
async def attach_provider(request: Request, facility_id: str, provider_id: str):
    user_id = get_user_id(request)
    attached = await db_call("attach_provider", user_id, facility_id, provider_id)
    if not attached:
        raise HTTPException(status_code=404, detail="Facility or provider not found.")
    return await db_call("get_facility", user_id, facility_id)

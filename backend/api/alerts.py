"""Alert and reminder endpoints."""

import logging
from datetime import timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from api.alert_models import (
    AlertCreate,
    AlertResponse,
    AlertSeverityEnum,
    AlertStatusEnum,
    AlertUpdate,
)
from api.deps import db_call, get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    request: Request,
    severity: Optional[AlertSeverityEnum] = Query(None),
    status: Optional[AlertStatusEnum] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    include_expired: bool = Query(False),
):
    """Alerts sorted most severe first, then newest."""
    user_id = get_user_id(request)
    return await db_call(
        "list_alerts",
        user_id,
        severity=severity.value if severity else None,
        status=status.value if status else None,
        search=search or None,
        include_expired=include_expired,
    )


@router.post("", response_model=AlertResponse, status_code=201)
async def create_alert(request: Request, body: AlertCreate):
    user_id = get_user_id(request)
    expires_at = None
    if body.expires_at:
        expires = body.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        expires_at = expires.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    alert = await db_call(
        "create_alert",
        user_id,
        body.title,
        alert_type=body.alert_type.value,
        severity=body.severity.value,
        message=body.message,
        data=body.data,
        expires_at=expires_at,
    )
    logger.info("Created %s alert %s", alert["severity"], alert["id"])
    return alert


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(request: Request, alert_id: str):
    user_id = get_user_id(request)
    alert = await db_call("get_alert", user_id, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found.")
    return alert


@router.api_route("/{alert_id}", methods=["PUT", "PATCH"], response_model=AlertResponse)
async def update_alert(request: Request, alert_id: str, body: AlertUpdate):
    user_id = get_user_id(request)
    updates = body.model_dump(mode="json", exclude_unset=True)
    for key in ("status", "title"):
        if key in updates and updates[key] is None:
            raise HTTPException(status_code=422, detail=f"{key} cannot be empty.")
    alert = await db_call("update_alert", user_id, alert_id, **updates)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found.")
    return alert


@router.delete("/{alert_id}")
async def delete_alert(request: Request, alert_id: str):
    user_id = get_user_id(request)
    deleted = await db_call("delete_alert", user_id, alert_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Alert not found.")
    return {"deleted": True, "id": alert_id}

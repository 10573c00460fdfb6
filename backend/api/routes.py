import logging

from fastapi import APIRouter, Body, Request
from starlette.concurrency import run_in_threadpool

from api import settings_store
from api.deps import db_call, get_user_id
from api.phi_audit import log_phi_access
from api.settings_models import AppSettings, SettingsUpdate
from storage.database import get_db
from tracking.workflow import IN_PROGRESS, PENDING, compute_stats

APP_VERSION = "1.0.0"

_logger = logging.getLogger(__name__)

router = APIRouter()

_CATEGORIES = ("conditions", "medications", "labs", "vitals", "procedures")
_RECENT_LIMIT = 5
_OPEN_PAGE_SIZE = 100


@router.get("/health")
@router.get("/healthz")
async def health_check():
    try:
        await run_in_threadpool(get_db)
        return {"status": "ok", "version": APP_VERSION}
    except Exception:
        _logger.exception("Health check could not open the database")
        return {"status": "starting", "version": APP_VERSION}


# --- Settings ---


@router.get("/settings", response_model=AppSettings)
async def get_settings(request: Request):
    """Return the caller's preferences."""
    user_id = get_user_id(request)
    return await run_in_threadpool(settings_store.get_settings, user_id)


@router.patch("/settings", response_model=AppSettings)
async def update_settings(request: Request, update: SettingsUpdate = Body(...)):
    """Update preferences (partial update)."""
    user_id = get_user_id(request)
    return await run_in_threadpool(settings_store.update_settings, user_id, update)


@router.post("/settings/reset", response_model=AppSettings)
async def reset_settings(request: Request):
    user_id = get_user_id(request)
    _logger.info("Settings reset for user %s", user_id)
    return await run_in_threadpool(settings_store.reset_settings, user_id)


# --- Dashboard ---


async def _dashboard_summary(user_id: str) -> dict:
    totals = {}
    for category in _CATEGORIES:
        totals[category] = await db_call("count_records", category, user_id)

    abnormal = {
        "labs": await db_call("count_records", "labs", user_id, abnormal_only=True),
        "vitals": await db_call("count_records", "vitals", user_id, abnormal_only=True),
    }
    status_rows = await db_call("list_request_status_rows", user_id)

    return {
        "totals": totals,
        "abnormal": abnormal,
        "active_conditions": await db_call("count_records", "conditions", user_id, status="active"),
        "active_medications": await db_call("count_records", "medications", user_id, status="active"),
        "active_alerts": await db_call("count_active_alerts", user_id),
        "requests": compute_stats(status_rows),
    }


@router.get("/profile/dashboard/me")
async def get_dashboard(request: Request):
    user_id = get_user_id(request)
    summary = await _dashboard_summary(user_id)
    await log_phi_access(request, "view_dashboard", "dashboard")
    return summary


@router.get("/profile/dashboard/me/detail")
async def get_dashboard_detail(request: Request):
    """Dashboard summary plus the latest records of each category and open requests."""
    user_id = get_user_id(request)
    summary = await _dashboard_summary(user_id)

    recent = {}
    for category in _CATEGORIES:
        recent[category] = await db_call("list_records", category, user_id, limit=_RECENT_LIMIT)

    open_requests = []
    for status in (PENDING, IN_PROGRESS):
        offset = 0
        while True:
            rows, total = await db_call(
                "list_requests", user_id, status=status, offset=offset, limit=_OPEN_PAGE_SIZE
            )
            open_requests.extend(rows)
            offset += len(rows)
            if not rows or offset >= total:
                break
    open_requests.sort(key=lambda r: r["created_at"], reverse=True)

    await log_phi_access(request, "view_dashboard", "dashboard")
    return {**summary, "recent": recent, "open_requests": open_requests}

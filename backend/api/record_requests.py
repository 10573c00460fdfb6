"""Record request ("request batch") endpoints: tracking, workflow, documents and downloads."""

import json
import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from api.deps import db_call, get_user_id
from api.phi_audit import log_phi_access
from api.rate_limit import UPLOAD_RATE_LIMIT, limiter
from api.request_models import (
    CancelRequest,
    RequestCreate,
    RequestDocument,
    RequestListResponse,
    RequestResponse,
    RequestStats,
    RequestUpdate,
    TimelineEvent,
    to_response,
)
from storage.documents import (
    ALLOWED_EXTENSIONS,
    MAX_DOCUMENT_BYTES,
    delete_request_documents,
    save_document,
)
from tracking.workflow import (
    CANCELLED,
    COMPLETED,
    IN_PROGRESS,
    PENDING,
    TransitionError,
    apply_transition,
    build_timeline,
    compute_stats,
    due_date_for,
    estimated_completion_for,
    parse_timestamp,
    progress_for,
    status_event,
    tracking_number_candidates,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/request-batches", tags=["request-batches"])

_TERMINAL = (COMPLETED, CANCELLED)


def _filter_value(value: Optional[str]) -> Optional[str]:
    """The value "all" (or blank) disables a list filter."""
    if not value or value == "all":
        return None
    return value


async def _get_owned_request(user_id: str, request_id: str) -> dict[str, Any]:
    row = await db_call("get_request", user_id, request_id)
    if not row:
        raise HTTPException(status_code=404, detail="Request not found.")
    return row


async def _full_response(user_id: str, row: dict[str, Any]) -> RequestResponse:
    provider = None
    if row.get("provider_id"):
        provider = await db_call("get_provider", user_id, row["provider_id"])
    documents = await db_call("list_request_documents", row["id"])
    return to_response(row, provider=provider, documents=documents)


async def _record_status_event(row: dict[str, Any], status: str, reason: Optional[str] = None) -> None:
    title, description = status_event(status, row["tracking_number"], reason)
    await db_call("add_request_event", row["id"], status, title, description)


@router.post("", response_model=RequestResponse, status_code=201)
async def create_request(request: Request, body: RequestCreate):
    user_id = get_user_id(request)

    provider = None
    if body.provider_id:
        provider = await db_call("get_provider", user_id, body.provider_id)
        if not provider:
            raise HTTPException(status_code=404, detail="Provider not found.")
    provider_name = (body.provider_name or "").strip() or provider["name"]

    now = datetime.now(timezone.utc)
    request_type = body.request_type.value
    title = (body.title or "").strip() or f"{request_type.replace('_', ' ').title()} Request"

    data = {
        "title": title,
        "description": body.description,
        "request_type": request_type,
        "provider_id": body.provider_id,
        "provider_name": provider_name,
        "record_types": [t.value for t in body.record_types],
        "date_start": body.date_range.start.isoformat() if body.date_range and body.date_range.start else None,
        "date_end": body.date_range.end.isoformat() if body.date_range and body.date_range.end else None,
        "priority": body.priority.value,
        "urgent_reason": body.urgent_reason,
        "notes": body.notes,
        "contact_preference": body.contact_preference.value,
        "delivery_method": body.delivery_method.value,
        "status": PENDING,
        "progress": 0,
        "estimated_completion": estimated_completion_for(request_type),
        "due_date": due_date_for(body.priority.value, now),
        "created_at": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }
    row = await db_call("create_request", user_id, tracking_number_candidates(now), data)
    tracking_number = row["tracking_number"]
    title, description = status_event(PENDING, tracking_number)
    await db_call("add_request_event", row["id"], "created", title, description)

    logger.info("Created record request %s (%s)", row["id"], tracking_number)
    await log_phi_access(request, "create_request", "record_request", row["id"])
    return to_response(row, provider=provider)


@router.get("", response_model=RequestListResponse)
async def list_requests(
    request: Request,
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    user_id = get_user_id(request)
    rows, total = await db_call(
        "list_requests",
        user_id,
        status=_filter_value(status),
        request_type=_filter_value(type),
        priority=_filter_value(priority),
        search=q or None,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return RequestListResponse(
        items=[to_response(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/stats", response_model=RequestStats)
async def get_request_stats(request: Request):
    user_id = get_user_id(request)
    rows = await db_call("list_request_status_rows", user_id)
    return compute_stats(rows)


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(request: Request, request_id: str):
    user_id = get_user_id(request)
    row = await _get_owned_request(user_id, request_id)
    await log_phi_access(request, "view_request", "record_request", request_id)
    return await _full_response(user_id, row)


@router.patch("/{request_id}", response_model=RequestResponse)
async def update_request(request: Request, request_id: str, body: RequestUpdate):
    user_id = get_user_id(request)
    existing = await _get_owned_request(user_id, request_id)

    updates = body.model_dump(mode="json", exclude_unset=True)
    new_status = updates.pop("status", None)
    progress = updates.pop("progress", None)
    reason = updates.pop("reason", None)

    if existing["status"] in _TERMINAL and (updates or progress is not None):
        raise HTTPException(
            status_code=409,
            detail=f"A {existing['status']} request can no longer be edited.",
        )

    for key in ("title", "priority", "contact_preference", "delivery_method"):
        if key in updates and updates[key] is None:
            raise HTTPException(status_code=422, detail=f"{key} cannot be empty.")

    if "date_range" in updates:
        date_range = updates.pop("date_range") or {}
        updates["date_start"] = date_range.get("start")
        updates["date_end"] = date_range.get("end")

    effective_priority = updates.get("priority", existing["priority"])
    if "priority" in updates:
        created = parse_timestamp(existing["created_at"])
        updates["due_date"] = due_date_for(updates["priority"], created)
    # urgent_reason only applies to high priority requests
    if effective_priority != "high" and ("priority" in updates or "urgent_reason" in updates):
        updates["urgent_reason"] = None

    status_changed = new_status is not None and new_status != existing["status"]
    if status_changed:
        try:
            updates.update(apply_transition(existing, new_status, progress=progress, reason=reason))
        except TransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
    elif progress is not None:
        if existing["status"] != IN_PROGRESS:
            raise HTTPException(
                status_code=409,
                detail="Progress can only be set while a request is in progress.",
            )
        updates["progress"] = progress_for(IN_PROGRESS, existing["progress"], progress)

    row = await db_call("update_request", user_id, request_id, **updates)
    if not row:
        raise HTTPException(status_code=404, detail="Request not found.")
    if status_changed:
        await _record_status_event(row, new_status, reason)
        logger.info("Request %s moved %s -> %s", request_id, existing["status"], new_status)

    await log_phi_access(request, "update_request", "record_request", request_id)
    return await _full_response(user_id, row)


@router.put("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request: Request,
    request_id: str,
    body: Optional[CancelRequest] = Body(None),
):
    user_id = get_user_id(request)
    existing = await _get_owned_request(user_id, request_id)
    reason = body.reason if body else None
    try:
        updates = apply_transition(existing, CANCELLED, reason=reason)
    except TransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    row = await db_call("update_request", user_id, request_id, **updates)
    if not row:
        raise HTTPException(status_code=404, detail="Request not found.")
    await _record_status_event(row, CANCELLED, reason)
    logger.info("Request %s cancelled", request_id)
    return await _full_response(user_id, row)


@router.delete("/{request_id}")
async def delete_request(request: Request, request_id: str):
    user_id = get_user_id(request)
    await _get_owned_request(user_id, request_id)
    await run_in_threadpool(delete_request_documents, request_id)
    deleted = await db_call("delete_request", user_id, request_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Request not found.")
    await log_phi_access(request, "delete_request", "record_request", request_id)
    return {"deleted": True, "id": request_id}


@router.get("/{request_id}/timeline", response_model=list[TimelineEvent])
async def get_request_timeline(request: Request, request_id: str):
    user_id = get_user_id(request)
    await _get_owned_request(user_id, request_id)
    events = await db_call("list_request_events", request_id)
    return build_timeline(events)


@router.get("/{request_id}/documents", response_model=list[RequestDocument])
async def list_request_documents(request: Request, request_id: str):
    user_id = get_user_id(request)
    await _get_owned_request(user_id, request_id)
    return await db_call("list_request_documents", request_id)


@router.post("/{request_id}/documents", response_model=RequestDocument, status_code=201)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def upload_request_document(request: Request, request_id: str, file: UploadFile = File(...)):
    """Attach a supporting document (PDF, image or Word file, 10 MB max)."""
    user_id = get_user_id(request)
    await _get_owned_request(user_id, request_id)

    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided.")

    ext = os.path.splitext(file.filename.lower())[1]
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {ext or 'none'}. Accepted: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    content = await file.read(MAX_DOCUMENT_BYTES + 1)
    if len(content) > MAX_DOCUMENT_BYTES:
        raise HTTPException(status_code=413, detail="File exceeds the 10 MB limit.")
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    stored_path = await run_in_threadpool(save_document, request_id, file.filename, content)
    document = await db_call(
        "add_request_document",
        request_id,
        os.path.basename(file.filename),
        stored_path,
        len(content),
        content_type=file.content_type,
    )
    await log_phi_access(request, "upload_document", "record_request", request_id)
    return document


def _render_text(response: RequestResponse, timeline: list[dict[str, Any]]) -> str:
    lines = [
        f"Record Request {response.tracking_number}",
        "=" * 40,
        f"Title: {response.title}",
        f"Provider: {response.provider_name}",
        f"Request type: {response.request_type.replace('_', ' ')}",
        f"Record types: {', '.join(t.replace('_', ' ') for t in response.record_types)}",
        f"Priority: {response.priority}",
        f"Status: {response.status.replace('_', ' ')} ({response.progress}%)",
        f"Submitted: {response.created_at}",
        f"Due: {response.due_date or 'n/a'}",
        f"Estimated completion: {response.estimated_completion or 'n/a'}",
    ]
    if response.date_range:
        lines.append(
            f"Date range: {response.date_range.get('start') or '...'} to {response.date_range.get('end') or '...'}"
        )
    if response.completed_at:
        lines.append(f"Completed: {response.completed_at}")
    if response.cancelled_at:
        lines.append(f"Cancelled: {response.cancelled_at}")
        if response.cancellation_reason:
            lines.append(f"Cancellation reason: {response.cancellation_reason}")
    if response.documents:
        lines.append("")
        lines.append("Documents:")
        for doc in response.documents:
            lines.append(f"  - {doc.filename} ({doc.size} bytes)")
    lines.append("")
    lines.append("Timeline:")
    for event in timeline:
        marker = " (current)" if event["current"] else ""
        lines.append(f"  [{event['timestamp']}] {event['title']}{marker}")
        if event.get("description"):
            lines.append(f"      {event['description']}")
    return "\n".join(lines) + "\n"


@router.get("/{request_id}/download")
async def download_request(
    request: Request,
    request_id: str,
    format: str = Query("json", pattern="^(json|txt)$"),
):
    """Download a summary of the request and its timeline."""
    user_id = get_user_id(request)
    row = await _get_owned_request(user_id, request_id)
    response = await _full_response(user_id, row)
    timeline = build_timeline(await db_call("list_request_events", request_id))

    await log_phi_access(request, "download_request", "record_request", request_id)

    filename = f"{response.tracking_number}.{format}"
    if format == "txt":
        content = _render_text(response, timeline)
        media_type = "text/plain; charset=utf-8"
    else:
        content = json.dumps(
            {"request": response.model_dump(), "timeline": timeline},
            indent=2,
            default=str,
        )
        media_type = "application/json"

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

"""Account endpoints: sign-up, login, profile, data export and account deletion."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from api.account_models import (
    DeleteAccountRequest,
    LoginRequest,
    PasswordChange,
    ProfileUpdate,
    SignUpRequest,
    TokenResponse,
    UserResponse,
)
from api.auth import create_access_token, hash_password, verify_password
from api.deps import db_call, get_user_id
from api.phi_audit import log_phi_access
from api.rate_limit import LOGIN_RATE_LIMIT, SIGN_UP_RATE_LIMIT, client_key, limiter
from storage.documents import delete_request_documents

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
profile_router = APIRouter(prefix="/profile/me", tags=["profile"])
router = APIRouter(prefix="/account", tags=["account"])

# Checked against when the email is unknown so both failure paths cost a bcrypt round
_DUMMY_HASH = hash_password("Fountain-timing-guard-0")


def user_response(user: dict[str, Any]) -> UserResponse:
    """Public view of a user row. ``name`` falls back to the email local part."""
    profile = user.get("profile_json") or {}
    name = profile.get("name") or user["email"].split("@")[0]
    return UserResponse(
        id=user["id"],
        email=user["email"],
        role=user.get("role") or "patient",
        type=user.get("type") or "individual",
        name=name,
        profile_json=profile,
        created_at=user["created_at"],
        last_sign_in_at=user.get("last_sign_in_at"),
    )


async def _require_user(user_id: str) -> dict[str, Any]:
    user = await db_call("get_user", user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


# --- /auth ---


@auth_router.post("/sign-up", response_model=TokenResponse, status_code=201)
@limiter.limit(SIGN_UP_RATE_LIMIT, key_func=client_key)
async def sign_up(request: Request, body: SignUpRequest):
    profile = body.profile_json.model_dump(mode="json", exclude_none=True)
    user = await db_call(
        "create_user",
        body.email,
        hash_password(body.password),
        role=body.role.value,
        user_type=body.type.value,
        profile=profile,
    )
    if user is None:
        raise HTTPException(status_code=409, detail="An account with this email already exists.")
    logger.info("Created account %s", user["id"])
    token = create_access_token(user["id"], user["email"])
    return TokenResponse(access_token=token, user=user_response(user))


@auth_router.post("/login", response_model=TokenResponse)
@limiter.limit(LOGIN_RATE_LIMIT, key_func=client_key)
async def login(request: Request, body: LoginRequest):
    user = await db_call("get_user_by_email", body.email)
    password_ok = verify_password(body.password, user["password_hash"] if user else _DUMMY_HASH)
    if not user or not password_ok:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    await db_call("touch_sign_in", user["id"])
    user = await _require_user(user["id"])
    token = create_access_token(user["id"], user["email"])
    return TokenResponse(access_token=token, user=user_response(user))


# --- /profile/me ---


@profile_router.get("", response_model=UserResponse)
async def get_profile(request: Request):
    user_id = get_user_id(request)
    user = await _require_user(user_id)
    await log_phi_access(request, "view_profile", "profile", user_id)
    return user_response(user)


@profile_router.put("", response_model=UserResponse)
async def update_profile(request: Request, body: ProfileUpdate):
    user_id = get_user_id(request)
    user = await _require_user(user_id)
    profile = dict(user.get("profile_json") or {})
    profile.update(body.profile_json.model_dump(mode="json", exclude_unset=True))
    updated = await db_call("update_user_profile", user_id, profile)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found.")
    await log_phi_access(request, "update_profile", "profile", user_id)
    return user_response(updated)


@profile_router.put("/password")
async def change_password(request: Request, body: PasswordChange):
    user_id = get_user_id(request)
    user = await _require_user(user_id)
    if not verify_password(body.current_password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect.")
    await db_call("set_password_hash", user_id, hash_password(body.new_password))
    logger.info("Password changed for user %s", user_id)
    return {"updated": True}


# --- /account ---


@router.get("/export")
async def export_account_data(request: Request):
    """Export all user data as a JSON file download."""
    user_id = get_user_id(request)
    user = await _require_user(user_id)
    data = await db_call("export_user_data", user_id)

    export = {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "user": user_response(user).model_dump(),
        **data,
    }

    await log_phi_access(request, "export_account", "account")

    content = json.dumps(export, indent=2, default=str)
    return Response(
        content=content,
        media_type="application/json",
        headers={
            "Content-Disposition": 'attachment; filename="fountain-data-export.json"',
        },
    )


@router.post("/delete")
async def delete_account(request: Request, body: DeleteAccountRequest):
    """Permanently delete the account and every row it owns.

    Expects JSON body: {"confirmation": "DELETE"}
    """
    user_id = get_user_id(request)

    if body.confirmation != "DELETE":
        raise HTTPException(
            status_code=400,
            detail='Must include {"confirmation": "DELETE"} to confirm account deletion.',
        )

    requests, _ = await db_call("list_requests", user_id, offset=0, limit=100000)
    files_removed = 0
    for req in requests:
        files_removed += delete_request_documents(req["id"])

    deleted = await db_call("delete_user", user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="User not found.")

    logger.info("Account deleted for user %s: documents=%d", user_id, files_removed)
    return {"deleted": True, "documents_removed": files_removed}

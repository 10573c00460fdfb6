"""Helpers shared by every router: caller identity and the database bridge."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from starlette.concurrency import run_in_threadpool

from storage.database import get_db

_db_logger = logging.getLogger("db_call")


def get_user_id(request: Request) -> str:
    """Extract user_id from request state (set by AuthMiddleware). Raises 401 if missing."""
    uid = getattr(request.state, "user_id", None)
    if not uid:
        raise HTTPException(status_code=401, detail="Authentication required.")
    return uid


async def db_call(method_name: str, *args, **kwargs):
    """Run a Database method in the threadpool.

    Any storage failure is logged and surfaced as a generic 500 so SQL
    details never reach the client.
    """
    db = get_db()
    method = getattr(db, method_name)
    try:
        return await run_in_threadpool(method, *args, **kwargs)
    except Exception as exc:
        _db_logger.exception("Database error in %s: %s", method_name, exc)
        raise HTTPException(
            status_code=500,
            detail="A database error occurred. Please try again.",
        )


def client_ip(request: Request) -> str | None:
    """Client IP: prefer X-Forwarded-For (behind a proxy), else direct."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None

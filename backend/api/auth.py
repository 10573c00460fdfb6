"""Bearer-token authentication.

Tokens are HS256 JWTs issued at sign-up and login. The middleware verifies
the token on every non-public request and stores the ``sub`` claim on
``request.state.user_id``.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from storage.database import get_db
from storage.keychain import get_keychain

_logger = logging.getLogger(__name__)

ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
_ALGORITHM = "HS256"

# Reachable without a token
PUBLIC_PATHS = frozenset({
    "/health",
    "/healthz",
    "/auth/login",
    "/auth/sign-up",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
})

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")


def password_problems(password: str) -> list[str]:
    """Return the password rules ``password`` breaks (empty when acceptable)."""
    problems = []
    if len(password) < 8:
        problems.append("Password must be at least 8 characters long")
    if not _UPPER.search(password):
        problems.append("Password must contain at least one uppercase letter")
    if not _LOWER.search(password):
        problems.append("Password must contain at least one lowercase letter")
    if not _DIGIT.search(password):
        problems.append("Password must contain at least one number")
    return problems


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: str, email: str, ttl_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ACCESS_TOKEN_TTL_MINUTES if ttl_minutes is None else ttl_minutes
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, get_keychain().get_jwt_secret(), algorithm=_ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify signature and expiry. Raises jwt.InvalidTokenError subclasses."""
    return jwt.decode(
        token,
        get_keychain().get_jwt_secret(),
        algorithms=[_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip auth for public endpoints and CORS preflight
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            request.state.user_id = None
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                {"detail": "Missing authorization header"}, status_code=401
            )

        token = auth_header[7:]
        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            return JSONResponse({"detail": "Token expired"}, status_code=401)
        except jwt.InvalidTokenError:
            return JSONResponse({"detail": "Invalid token"}, status_code=401)

        user_id = payload.get("sub")
        # Tokens outlive deleted accounts; reject those
        user = await run_in_threadpool(get_db().get_user, user_id)
        if user is None:
            return JSONResponse({"detail": "Invalid token"}, status_code=401)

        request.state.user_id = user_id
        request.state.user_email = user["email"]
        return await call_next(request)

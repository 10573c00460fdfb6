"""Rate limiting using slowapi.

Sign-up and login are limited per client address to slow credential
guessing and account farming; document uploads are limited per user.
Everything is disabled with RATE_LIMIT_ENABLED=false.
"""

import os

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false"

LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10/minute")
SIGN_UP_RATE_LIMIT = os.getenv("SIGN_UP_RATE_LIMIT", "5/hour")
UPLOAD_RATE_LIMIT = os.getenv("UPLOAD_RATE_LIMIT", "30/minute")


def client_key(request: Request) -> str:
    """Key unauthenticated routes by the connecting address.

    uvicorn's proxy_headers already rewrites the client address for
    trusted proxies, so X-Forwarded-For from anyone else is ignored.
    """
    return get_remote_address(request)


def user_key(request: Request) -> str:
    """Key authenticated routes by user so a shared NAT does not share a budget."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return client_key(request)


limiter = Limiter(
    key_func=user_key,
    enabled=RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the exceeded limit as a retry hint."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many attempts. Please wait before trying again.",
            "retry_after": exc.detail,
        },
    )

"""Audit logging middleware.

Every API call is logged with a request id, the caller, the kind of health
resource touched, the status code and the duration. Request bodies and query
strings are never logged since they may carry PHI.
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("audit")
logger.setLevel(logging.INFO)

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    )
    logger.addHandler(handler)

REQUEST_ID_HEADER = "X-Request-ID"

# Load balancer probes would drown out real traffic
_UNAUDITED_PATHS = frozenset({"/health", "/healthz"})

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# First matching prefix wins
_RESOURCE_PREFIXES = (
    ("/health-data/", None),
    ("/profile/me/health-data", "health_data"),
    ("/profile/dashboard", "dashboard"),
    ("/profile/me", "profile"),
    ("/request-batches", "record_request"),
    ("/providers", "provider"),
    ("/facilities", "facility"),
    ("/alerts", "alert"),
    ("/settings", "settings"),
    ("/account", "account"),
    ("/auth", "auth"),
    ("/facts", "catalog"),
)


def resource_for_path(path: str) -> str:
    """Name the kind of resource a request path touches, for the audit trail."""
    for prefix, resource in _RESOURCE_PREFIXES:
        if path.startswith(prefix):
            if resource is None:
                # /health-data/<category>/...
                return path[len(prefix):].split("/", 1)[0] or "health_data"
            return resource
    return "other"


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return uuid.uuid4().hex[:16]


class AuditMiddleware(BaseHTTPMiddleware):
    """Log every request for compliance and debugging."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in _UNAUDITED_PATHS:
            return await call_next(request)

        request_id = _request_id(request)
        request.state.request_id = request_id
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        # AuthMiddleware runs inside this one, so state is populated by now
        user_id = getattr(request.state, "user_id", None) or "anonymous"

        logger.info(
            "request_id=%s user=%s method=%s path=%s resource=%s status=%d duration_ms=%.1f",
            request_id,
            user_id,
            request.method,
            request.url.path,
            resource_for_path(request.url.path),
            response.status_code,
            duration_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

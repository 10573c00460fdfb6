import logging
import os
import re
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from slowapi.errors import RateLimitExceeded

from api.account import auth_router, profile_router, router as account_router
from api.alerts import router as alerts_router
from api.audit import AuditMiddleware
from api.auth import AuthMiddleware
from api.middleware import add_cors_middleware
from api.providers import router as providers_router
from api.rate_limit import limiter, rate_limit_exceeded_handler
from api.record_requests import router as requests_router
from api.records import router as records_router
from api.routes import APP_VERSION, router
from server import find_free_port, start_server
from storage import get_db, get_keychain

_logger = logging.getLogger(__name__)

_SENTRY_DSN = os.getenv("SENTRY_DSN", "")

# PHI patterns to scrub from error reports (covers HIPAA Safe Harbor identifiers)
_PHI_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),                    # SSN
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),                    # ISO dates (birth, onset, observed)
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),        # dates
    re.compile(r"\+?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b"),  # phone / fax
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),  # email
    re.compile(r"\bREQ-\d{6}-\d{4}\b"),                       # tracking numbers
    re.compile(r"(?i)(?:patient|name)\s*[:=]\s*[^\n,;]{2,40}"),  # labeled patient name
    re.compile(r"(?i)(?:date of birth|dob)\s*[:=]?\s*[^\n]{1,30}"),  # labeled birth dates
]


def _scrub_phi(text: str) -> str:
    for pattern in _PHI_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def _before_send(event, hint):
    # Scrub PHI from exception values
    if "exception" in event:
        for exc_info in event["exception"].get("values", []):
            if exc_info.get("value"):
                exc_info["value"] = _scrub_phi(exc_info["value"])
    # Scrub breadcrumbs
    for bc in event.get("breadcrumbs", {}).get("values", []):
        if bc.get("message"):
            bc["message"] = _scrub_phi(bc["message"])
    # Request bodies may carry health data
    request = event.get("request")
    if request and "data" in request:
        request["data"] = "[REDACTED]"
    return event


def _init_sentry() -> None:
    if not _SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=_SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "development"),
        integrations=[FastApiIntegration(), StarletteIntegration()],
        before_send=_before_send,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Open the database and resolve the signing secret up front
    get_db()
    get_keychain().get_jwt_secret()
    _logger.info("Fountain API %s started", APP_VERSION)
    yield


def create_app() -> FastAPI:
    _init_sentry()
    app = FastAPI(title="Fountain API", version=APP_VERSION, lifespan=lifespan)
    # Middleware order (inner → outer): Auth → Audit → CORS
    # CORS must be outermost so ALL responses (including 500s) get headers.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(AuditMiddleware)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    add_cors_middleware(app)

    # Catch-all exception handler so unhandled errors still return JSON
    # with CORS headers (instead of a bare 500 that the browser blocks).
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error."},
        )

    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(records_router)
    app.include_router(profile_router)
    app.include_router(providers_router)
    app.include_router(requests_router)
    app.include_router(alerts_router)
    app.include_router(account_router)
    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    port = int(os.getenv("PORT", "0")) or find_free_port()
    app = create_app()
    start_server(app, port)

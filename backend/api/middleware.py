import os

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send
from fastapi.middleware.cors import CORSMiddleware

# Methods the API actually serves
_CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Headers browsers may read from responses (downloads, request tracing)
_EXPOSED_HEADERS = ["Content-Disposition", "X-Request-ID"]

# Interactive docs need to be framed and cached by the browser
_DOCS_PREFIXES = ("/docs", "/redoc", "/openapi.json")


def parse_allowed_origins(raw: str | None = None) -> list[str]:
    """Comma-separated ALLOWED_ORIGINS, or every origin when unset.

    Trailing slashes are dropped since browsers never send them in Origin.
    """
    raw = os.getenv("ALLOWED_ORIGINS", "") if raw is None else raw
    origins = [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]
    return origins or ["*"]


class HealthDataHeadersMiddleware(BaseHTTPMiddleware):
    """No-store and hardening headers on every API response.

    Health records must not linger in browser or proxy caches, and API
    responses are never meant to be rendered in a frame.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.path.startswith(_DOCS_PREFIXES):
            return response
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        response.headers["X-Frame-Options"] = "DENY"
        return response


class CORSErrorWrapper:
    """Raw ASGI wrapper that puts CORS headers on every response.

    BaseHTTPMiddleware turns exceptions from call_next() into bare 500
    responses that bypass CORSMiddleware, which the browser then blocks.
    This wrapper sits outside everything and adds the headers to any
    response that lacks them.
    """

    def __init__(self, app: ASGIApp, allowed_origins: list[str]) -> None:
        self.app = app
        self.allowed_origins = allowed_origins

    def origin_allowed(self, origin: str) -> bool:
        return "*" in self.allowed_origins or origin.rstrip("/") in self.allowed_origins

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_origin = dict(scope.get("headers", [])).get(b"origin", b"").decode("latin-1")
        if not request_origin or not self.origin_allowed(request_origin):
            await self.app(scope, receive, send)
            return

        async def send_with_cors(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                if not any(name == b"access-control-allow-origin" for name, _ in headers):
                    headers.append((b"access-control-allow-origin", request_origin.encode("latin-1")))
                    headers.append((b"access-control-allow-credentials", b"true"))
                    headers.append((b"vary", b"Origin"))
                    message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_cors)


def add_cors_middleware(app) -> list[str]:
    """Install the response-header and CORS layers. Returns the allowed origins."""
    origins = parse_allowed_origins()

    app.add_middleware(HealthDataHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=_CORS_METHODS,
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=_EXPOSED_HEADERS,
    )
    # Outermost: CORS headers even on bare 500s from BaseHTTPMiddleware
    app.add_middleware(CORSErrorWrapper, allowed_origins=origins)
    return origins

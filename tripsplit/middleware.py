"""Browser identity and per-request logging.

Each browser gets a `ctk` cookie the first time it calls the API. The cookie
is the only identity this service has: `request.state.user` is the User whose
`ctk` matches it, or None until that browser saves a profile via PATCH /api/me.
"""

import logging
import os
import secrets
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tripsplit.database import SessionLocal
from tripsplit.models import User

logger = logging.getLogger("tripsplit")

IDENTITY_COOKIE = "ctk"
IDENTITY_PATH = "/api"
IDENTITY_MAX_AGE = 10 * 365 * 24 * 60 * 60
LOCAL_HOSTS = ("localhost", "127.0.0.1")

SKIP_LOG_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}


def resolve_user(ctk: str) -> User | None:
    db = SessionLocal()
    try:
        return db.query(User).filter(User.ctk == ctk).first()
    finally:
        db.close()


def identity_cookie_options(request: Request) -> dict:
    local = request.url.hostname in LOCAL_HOSTS
    return {
        "max_age": IDENTITY_MAX_AGE,
        "httponly": True,
        "samesite": "lax",
        "secure": not local,
        "path": IDENTITY_PATH,
        "domain": None if local else (os.getenv("COOKIE_DOMAIN") or None),
    }


class IdentityMiddleware(BaseHTTPMiddleware):
    """Issues the ctk cookie on API calls and attaches the caller's User."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.ctk = None
        request.state.user = None

        # Preflights and non-API paths never carry the /api-scoped cookie
        if request.method == "OPTIONS" or not request.url.path.startswith(IDENTITY_PATH):
            return await call_next(request)

        ctk = request.cookies.get(IDENTITY_COOKIE)
        issued = not ctk
        if issued:
            ctk = secrets.token_urlsafe(24)
        else:
            request.state.user = resolve_user(ctk)
        request.state.ctk = ctk

        response = await call_next(request)
        if issued:
            response.set_cookie(IDENTITY_COOKIE, ctk, **identity_cookie_options(request))
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON line per request; server errors log at ERROR."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)

        path = request.url.path
        if path in SKIP_LOG_PATHS:
            return response

        user = getattr(request.state, "user", None)
        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"{request.method} {path} {response.status_code}",
            extra={"extra_data": {
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000),
                "ctk": getattr(request.state, "ctk", None),
                "user_id": user.id if user else None,
            }},
        )
        return response

"""
api/main.py -- FastAPI application entry point for Scribe.

Exposes the session core over HTTP. The app owns no business logic: route
handlers call AuthService and exception handlers turn AuthError into the
{statusCode, error, message} envelope.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan handles startup (settings, store, default-role check, services) and
shutdown (close DB connection) symmetrically. Startup fails if a signing
secret or the default role is missing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, ConfigurationError, InternalError
from auth.profiles import ProfileService
from auth.service import AuthService
from auth.store import CredentialStore
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("scribe.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application-level resources once and tear them down on exit.

    Startup order matters:
      1. Settings first -- a missing secret raises here, before anything binds.
      2. Store second -- creates tables if absent.
      3. Services -- AuthService re-checks secrets at construction.
      4. Default-role check, by code then by name, same as register().
    """
    settings = get_settings()
    logger.info("Scribe API starting up")
    app.state.store = CredentialStore(settings.database_url)
    app.state.profiles = ProfileService(app.state.store)
    app.state.auth_service = AuthService(settings, app.state.store, profiles=app.state.profiles)
    try:
        app.state.auth_service.resolve_default_role()
    except InternalError:
        app.state.store.close()
        raise ConfigurationError(
            f"Default role {settings.default_role_code} (name {settings.default_role_name!r}) is missing. "
            "Run `python main.py seed-roles` first."
        ) from None
    logger.info(
        "Auth initialized (access ttl=%s, refresh ttl=%s)",
        settings.jwt_expires_in,
        settings.jwt_refresh_expires_in,
    )

    yield

    app.state.store.close()
    logger.info("Scribe API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Scribe API",
    description="Credential and session management for the Scribe content platform.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same ErrorResponse envelope, so clients parse
# errors uniformly. No handler echoes exception text it did not write itself.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    body = ErrorResponse(
        status_code=status_code,
        error=error or HTTPStatus(status_code).phrase,
        message=message,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message, exc.error)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests. Try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 naming the first invalid field. Submitted values are not echoed."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
        message = f"{field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Request validation failed."
    return _error(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
    return _error(exc.status_code, message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    database = "ok" if request.app.state.store.ping() else "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})

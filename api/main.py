"""
api/main.py -- FastAPI application entry point for X Reply Manager.

Exposes the Twitter OAuth flow, the account endpoints and the reply
suggestion workflow over HTTP. The HTML dashboard is mounted on top of this
app by asgi.py.

Run with:      uvicorn asgi:app --reload

Middleware (registration order below; Starlette runs the last registered
outermost):
  TrustedHostMiddleware -- rejects requests with unexpected Host headers
  CORSMiddleware        -- adds CORS headers for allowed browser origins
  SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  SessionMiddleware     -- signed cookie holding the pending OAuth request
  resolve_session       -- session cookie -> request.state.user
  log_requests          -- method, path, status, latency

Lifespan opens the four stores and attaches the authlib OAuth registry on
startup, and disposes the store engines on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.twitter import router as twitter_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.replies import router as replies_router
from api.routes.v1.settings import router as settings_router
from api.routes.v1.targets import router as targets_router
from auth.credentials import CredentialStore
from auth.dependencies import get_current_user, load_session_user
from auth.models import User
from auth.oauth import TwitterNotConfiguredError
from auth.oauth import oauth as oauth_client
from auth.store import UserStore
from core.config import get_settings
from replies.store import ReplyStore
from targets.store import TargetStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("xreply.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores on startup and release them on shutdown.

    All four stores share the DATABASE_URL; each owns its own engine so a
    store can be swapped for a test double without touching the others.
    Expired sessions left over from the previous run are purged once here.
    """
    logger.info("X Reply Manager API starting up")
    app.state.user_store = UserStore()
    app.state.credential_store = CredentialStore()
    app.state.reply_store = ReplyStore()
    app.state.target_store = TargetStore()
    app.state.oauth = oauth_client
    purged = app.state.user_store.purge_expired_sessions()
    logger.info(
        "Stores initialized (expired sessions purged=%d, twitter_configured=%s)",
        purged,
        _settings.twitter_configured,
    )
    if not _settings.twitter_configured:
        logger.warning("TWITTER_CLIENT_ID / TWITTER_CLIENT_SECRET not set -- Twitter login is disabled")

    yield

    app.state.target_store.close()
    app.state.reply_store.close()
    app.state.credential_store.close()
    app.state.user_store.close()
    logger.info("X Reply Manager API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="X Reply Manager API",
    description="Connect an X (Twitter) account and review suggested replies.",
    version=API_VERSION,
    lifespan=lifespan,
    # Auth-protected equivalents of /docs and /redoc are registered below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Holds authlib's pending authorization (state + PKCE verifier) between the
# redirect to Twitter and the callback. The cookie is signed with SECRET_KEY
# (itsdangerous); its max_age is the lifetime of a pending authorization.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="oauth_session",
    max_age=_settings.oauth_state_ttl_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Session resolution middleware
#
# The session cookie is resolved exactly once per request, before routing,
# so API dependencies and web pages read the same request.state.user.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def resolve_session(request: Request, call_next):
    await run_in_threadpool(load_session_user, request)
    return await call_next(request)


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

# OAuth initiator and callback live outside /api/v1: their paths are
# registered with Twitter as the app's redirect URI.
app.include_router(twitter_router, tags=["Twitter OAuth"])
app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(settings_router, prefix="/api/v1", tags=["Settings"])
app.include_router(replies_router, prefix="/api/v1", tags=["Replies"])
app.include_router(targets_router, prefix="/api/v1", tags=["Targets"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires a session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="X Reply Manager API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires a session."""
    return get_redoc_html(openapi_url="/openapi.json", title="X Reply Manager API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and a Retry-After header."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(TwitterNotConfiguredError)
async def twitter_not_configured_handler(request: Request, exc: TwitterNotConfiguredError) -> JSONResponse:
    """Return 503 when Twitter login is attempted without client credentials.

    A deployment problem, not a client error: the message names the missing
    settings but no values.
    """
    logger.error("Twitter login attempted but OAuth client is not configured")
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error=ErrorDetail(
                code="twitter_not_configured",
                message="Twitter login is not configured on this server.",
                detail=str(exc),
            )
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail; that dict becomes the error field as-is.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The exception is logged with its traceback; the client only receives a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined here rather than in a router so it is reachable regardless of router
# registration. Not rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=API_VERSION)

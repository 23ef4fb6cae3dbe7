"""
api/main.py -- FastAPI application entry point for SubmitVault.

Exposes the security core (two-step login, protected submissions, role-based
access control, audit trail) over HTTP.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every component from ONE Settings instance and stores it on
app.state. Route handlers and dependencies read components from app.state;
the components themselves never call get_settings().
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
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.audit import router as audit_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.submissions import router as submissions_router
from api.routes.v1.system import router as system_router
from audit.sink import AuditSink
from audit.store import AuditStore
from auth.acl import DEFAULT_POLICY
from auth.dependencies import get_current_claims
from auth.lockout import LockoutPolicy
from auth.models import Claims
from auth.otp import OTPIssuer
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.errors import AccountLocked, SecurityError
from vault.protector import ContentProtector
from vault.store import SubmissionStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("submitvault.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def configure_state(state, settings: Settings) -> None:
    """Build every component from settings and attach it to app.state.

    Construction order follows the dependency graph: stores first, then the
    leaf services that wrap them, then AuthService which orchestrates the
    leaves. tests/conftest.py calls this with an in-memory database URL.
    """
    state.settings = settings

    state.account_store = AccountStore(settings.database_url)
    state.audit_store = AuditStore(settings.database_url)
    state.submission_store = SubmissionStore(settings.database_url)

    state.audit = AuditSink(state.audit_store)
    state.policy = DEFAULT_POLICY
    state.tokens = TokenService(settings.secret_key, lifetime_seconds=settings.token_expire_seconds)
    state.protector = ContentProtector(settings.encryption_key_bytes, settings.content_signing_key_bytes)
    state.auth = AuthService(
        store=state.account_store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        otp=OTPIssuer(state.account_store, ttl_seconds=settings.otp_ttl_seconds),
        tokens=state.tokens,
        lockout=LockoutPolicy(settings.lockout_threshold, settings.lockout_seconds),
        audit=state.audit,
        password_min_length=settings.password_min_length,
    )


def close_state(state) -> None:
    state.submission_store.close()
    state.audit_store.close()
    state.account_store.close()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. A bad secret configuration raises here, so the server refuses
    to start rather than serving with weak keys.
    """
    logger.info("SubmitVault API starting up")
    settings = get_settings()
    configure_state(app.state, settings)
    if not app.state.account_store.has_accounts():
        logger.warning("No accounts exist yet. Create one with: python main.py create-account")
    logger.info("Components initialized (debug=%s)", settings.debug)

    yield

    close_state(app.state)
    logger.info("SubmitVault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SubmitVault API",
    description="Academic submission portal: two-factor login, encrypted and signed submissions, audit trail.",
    version=API_VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by token-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=get_settings().allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Only method, path, status, latency and client host are logged;
# bodies (passwords, codes, content) never are.
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
app.include_router(submissions_router, prefix="/api/v1", tags=["Submissions"])
app.include_router(audit_router, prefix="/api/v1", tags=["Audit"])
app.include_router(system_router, prefix="/api/v1", tags=["System"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(claims: Claims = Depends(get_current_claims)):
    """Swagger UI -- requires a session token."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="SubmitVault API")


@app.get("/redoc", include_in_schema=False)
async def redoc(claims: Claims = Depends(get_current_claims)):
    """ReDoc UI -- requires a session token."""
    return get_redoc_html(openapi_url="/openapi.json", title="SubmitVault API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(SecurityError)
async def security_error_handler(request: Request, exc: SecurityError) -> JSONResponse:
    """Render any rejected security operation with its stable code and client-safe message.

    The audit record for the rejection was already written where the error
    was raised; this handler only shapes the response.
    """
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message, detail=exc.detail)).model_dump(),
    )
    if isinstance(exc, AccountLocked):
        response.headers["Retry-After"] = str(exc.remaining_seconds)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
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


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Input values are stripped from the reported errors so a rejected password
    is never echoed back.
    """
    errors = [{"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(errors),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    A storage outage therefore surfaces as internal_error, not as a
    credential failure.
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
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit and no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    components = {"app": "ok"}
    try:
        request.app.state.account_store.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)

"""
api/routes/v1/auth.py -- Registration and two-step login REST endpoints.

Routes:
  POST /api/v1/auth/register     -- create an account (policy checked); 201
  POST /api/v1/auth/login        -- password step; issues a one-time code
  POST /api/v1/auth/verify-otp   -- code step; returns a session token
  POST /api/v1/auth/logout       -- stateless; the client discards its token
  GET  /api/v1/auth/me           -- current token claims (requires auth)
  POST /api/v1/auth/password     -- change own password (requires auth)

Security:
  [H2] /login and /verify-otp are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token or challenge.
  The one-time code is never returned in a response body. With DEBUG=true it
  is written to the log, since no mail transport is configured.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccountResponse,
    ChallengeResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    PasswordChangeRequest,
    RegisterRequest,
    VerifyOTPRequest,
)
from auth.dependencies import get_current_claims, origin_from_request
from auth.models import Claims
from auth.service import AuthService, ChallengeIssued

logger = logging.getLogger("submitvault.api.auth")

# Auth policy:
# - POST /api/v1/auth/register:    public -- registration is open, role is chosen by the registrant
# - POST /api/v1/auth/login:       public -- step one of login
# - POST /api/v1/auth/verify-otp:  public -- step two of login
# - POST /api/v1/auth/logout:      public -- tokens are stateless, nothing to revoke server-side
# - GET  /api/v1/auth/me:          requires auth (get_current_claims)
# - POST /api/v1/auth/password:    requires auth (get_current_claims)
router = APIRouter()


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _deliver_code(request: Request, issued: ChallengeIssued) -> None:
    """Hand the one-time code to the user.

    Only the development channel exists: the code is logged when DEBUG=true.
    """
    if request.app.state.settings.debug:
        logger.warning("DEV one-time code for %s: %s (expires %s)", issued.username, issued.code, issued.expires_at)
    else:
        logger.info("One-time code issued for %s; no delivery channel configured", issued.username)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AccountResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Register a new account. Weak passwords and taken usernames return 422."""
    service: AuthService = request.app.state.auth
    account = service.register(body.username, body.password, body.role, origin_from_request(request))
    return _no_store(
        AccountResponse(
            id=account.id,
            username=account.username,
            role=account.role,
            mfa_enabled=account.mfa_enabled,
            created_at=account.created_at or "",
        ).model_dump(mode="json"),
        status_code=201,
    )


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=ChallengeResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify username and password, then issue a one-time code.

    Wrong username and wrong password return the same invalid_credentials
    error so responses do not reveal which usernames exist.
    """
    service: AuthService = request.app.state.auth
    issued = service.login(body.username, body.password, origin_from_request(request))
    _deliver_code(request, issued)
    return _no_store(
        ChallengeResponse(
            account_id=issued.account_id,
            challenge_id=issued.challenge_id,
            expires_at=issued.expires_at,
        ).model_dump()
    )


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/verify-otp", response_model=LoginResponse)
def verify_otp(request: Request, body: VerifyOTPRequest) -> JSONResponse:
    """Exchange a valid one-time code for a session token."""
    service: AuthService = request.app.state.auth
    result = service.verify_challenge(body.account_id, body.code, origin_from_request(request))
    claims = result.claims
    return _no_store(
        LoginResponse(
            access_token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=claims.expires_at - claims.issued_at,
            account_id=claims.account_id,
            username=claims.username,
            role=claims.role,
        ).model_dump(mode="json")
    )


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Tokens are stateless; logging out means the client discards its token."""
    return _no_store({"message": "Logged out. Discard the session token."})


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: Claims = Depends(get_current_claims)) -> MeResponse:
    """Return identity information carried by the current session token."""
    return MeResponse(
        account_id=claims.account_id,
        username=claims.username,
        role=claims.role,
        expires_at=claims.expires_at,
    )


@router.post("/auth/password")
def change_password(
    request: Request, body: PasswordChangeRequest, claims: Claims = Depends(get_current_claims)
) -> JSONResponse:
    """Change the caller's own password. Existing tokens stay valid until they expire."""
    service: AuthService = request.app.state.auth
    service.change_password(claims.account_id, body.current_password, body.new_password, origin_from_request(request))
    return _no_store({"message": "Password changed."})

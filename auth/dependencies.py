"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

One auth method: Authorization: Bearer <token>. The token is a session JWT
minted by AuthService after the OTP step; there is no cookie and no API key.

get_current_claims() verifies the token (TokenService on app.state) and
returns the Claims. It raises TokenInvalid / TokenExpired, which the
SecurityError handler in api/main.py renders as 401.

require_permission(resource, action) builds a dependency that authorizes the
caller's role against the AccessPolicy on app.state. Every decision, granted
or denied, writes one audit record. Denials raise Forbidden (403).

deny() is for object-level checks made inside a route after the matrix check
passed (a submitter reading someone else's submission).

Layer rule: auth/dependencies.py may import from fastapi (for Depends/Request)
because this module is part of the FastAPI dependency injection system. No
imports from api/ or vault/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from audit.models import UNKNOWN, Origin
from auth.models import Action, Claims, ResourceType
from auth.service import AUTH_RESOURCE
from core.errors import Forbidden, TokenExpired, TokenInvalid

_BEARER_PREFIX = "Bearer "


def origin_from_request(request: Request) -> Origin:
    """Capture caller network metadata for the audit trail."""
    return Origin(
        ip_address=request.client.host if request.client else UNKNOWN,
        user_agent=request.headers.get("User-Agent", UNKNOWN),
    )


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(_BEARER_PREFIX):
        return auth_header[len(_BEARER_PREFIX) :].strip() or None
    return None


def get_current_claims(request: Request) -> Claims:
    """Require a valid session token. Raises TokenInvalid or TokenExpired.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: Claims = Depends(get_current_claims)): ...
    """
    token = _bearer_token(request)
    try:
        if token is None:
            raise TokenInvalid("Authentication required.")
        return request.app.state.tokens.verify(token)
    except (TokenInvalid, TokenExpired) as exc:
        request.app.state.audit.record(
            None,
            "auth.token.rejected",
            AUTH_RESOURCE,
            f"{exc.code} on {request.method} {request.url.path}",
            origin_from_request(request),
        )
        raise


def deny(request: Request, claims: Claims, resource: ResourceType, action: Action, reason: str) -> Forbidden:
    """Audit an object-level denial and return the exception for the caller to raise."""
    request.app.state.audit.record(
        claims.account_id,
        "access.denied",
        resource,
        f"{claims.role.value} {action.value} {resource.value}: {reason}",
        origin_from_request(request),
        claims.username,
    )
    return Forbidden(detail=reason)


def require_permission(resource: ResourceType, action: Action) -> Callable[..., Claims]:
    """Build a dependency that enforces the role permission matrix.

    Use as a FastAPI dependency:
        @router.post("/submissions")
        def create(claims: Claims = Depends(require_permission(ResourceType.SUBMISSION, Action.CREATE))): ...
    """

    def dependency(request: Request, claims: Claims = Depends(get_current_claims)) -> Claims:
        allowed = request.app.state.policy.authorize(claims.role, resource, action)
        request.app.state.audit.record(
            claims.account_id,
            "access.granted" if allowed else "access.denied",
            resource,
            f"{claims.role.value} {action.value} {resource.value} via {request.method} {request.url.path}",
            origin_from_request(request),
            claims.username,
        )
        if not allowed:
            raise Forbidden(detail=f"Role {claims.role.value} may not {action.value} {resource.value}.")
        return claims

    return dependency

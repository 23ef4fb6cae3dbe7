"""
api/routes/v1/system.py -- Introspection endpoints for authenticated callers.

Routes:
  GET /system/acl  -- the role x resource permission matrix in force
"""

from fastapi import APIRouter, Depends, Request

from auth.acl import AccessPolicy
from auth.dependencies import get_current_claims
from auth.models import Claims

router = APIRouter()


@router.get("/system/acl", response_model=dict[str, dict[str, list[str]]])
def get_acl(request: Request, claims: Claims = Depends(get_current_claims)) -> dict[str, dict[str, list[str]]]:
    """Return every role's permitted actions per resource type. Empty lists mean no access."""
    policy: AccessPolicy = request.app.state.policy
    return policy.as_dict()

"""
api/routes/v1/audit.py -- Read-only view of the audit trail.

Routes:
  GET /audit  -- newest records first; filter by actor_id and action prefix

There is deliberately no write, update or delete route. Records are created
as side effects of authentication and authorization, never by clients.
"""

from fastapi import APIRouter, Depends, Query, Request

from api.models import AuditRecordResponse
from audit.store import AuditStore
from auth.dependencies import require_permission
from auth.models import Action, Claims, ResourceType

router = APIRouter()


@router.get("/audit", response_model=list[AuditRecordResponse])
def list_audit_records(
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
    actor_id: int | None = Query(default=None, ge=1),
    action: str | None = Query(default=None, max_length=64, description='Dotted prefix, e.g. "auth." or "access."'),
    claims: Claims = Depends(require_permission(ResourceType.AUDIT_LOG, Action.READ)),
) -> list[AuditRecordResponse]:
    store: AuditStore = request.app.state.audit_store
    records = store.list_recent(limit=limit, actor_id=actor_id, action_prefix=action)
    return [AuditRecordResponse.from_record(r) for r in records]

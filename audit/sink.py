"""
audit/sink.py -- Best-effort audit recording.

AuditSink.record() is called synchronously as a side effect of every
authentication transition and every authorization decision. It never raises
on a storage failure: the error is written to the "submitvault.audit" logger
with its traceback and the primary operation keeps its own outcome. Audit is
observability here, not a transactional participant.

Secrets (passwords, OTP codes, tokens, keys) must never be passed in detail.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditRecord, Origin
from audit.store import AuditStore

logger = logging.getLogger("submitvault.audit")

_MAX_DETAIL = 2000


class AuditSink:
    def __init__(self, store: AuditStore) -> None:
        self.store = store

    def record(
        self,
        actor_id: int | None,
        action: str,
        resource_type: str,
        detail: str,
        origin: Origin | None = None,
        actor_name: str | None = None,
    ) -> None:
        origin = origin or Origin()
        entry = AuditRecord(
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            resource_type=str(getattr(resource_type, "value", resource_type)),
            detail=detail[:_MAX_DETAIL],
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
        )
        try:
            self.store.append(entry)
        except SQLAlchemyError:
            logger.exception("Audit write failed: action=%s actor=%s resource=%s", action, actor_id, resource_type)

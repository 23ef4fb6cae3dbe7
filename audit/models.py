"""
audit/models.py -- Domain dataclasses for the audit trail.

AuditRecord is append-only: the store inserts and reads, never updates or
deletes. Origin is the caller's network metadata, captured by the API layer
from the incoming request.
"""

from __future__ import annotations

from dataclasses import dataclass

UNKNOWN = "unknown"


@dataclass(frozen=True)
class Origin:
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN


@dataclass
class AuditRecord:
    """One security-relevant event.

    actor_id is None for anonymous failures (unknown username, bad token).
    action uses dotted names ("auth.login.failed", "access.denied") so
    records can be filtered by prefix.
    """

    action: str
    resource_type: str
    detail: str
    actor_id: int | None = None
    actor_name: str | None = None
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN
    timestamp: str = ""  # ISO 8601, set by store on insert
    id: int | None = None

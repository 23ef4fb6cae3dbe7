"""
audit/store.py -- SQLAlchemy Core persistence for audit records.

Pattern: Repository + Data Mapper. The repository deliberately has no update
or delete method: records are never edited after creation. Retention and
archival are handled outside this service.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, func, select
from sqlalchemy.engine import Engine

from audit.models import AuditRecord

_metadata = MetaData()

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("actor_id", Integer),  # NULL for anonymous failures
    Column("actor_name", String(255)),
    Column("action", String(64), nullable=False, index=True),
    Column("resource_type", String(30), nullable=False),
    Column("detail", Text, nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("ip_address", String(45), nullable=False),
    Column("user_agent", String(512), nullable=False),
)

_MAX_USER_AGENT = 512
_MAX_LIST = 500


class AuditStore:
    """Append-only repository for AuditRecord."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        _metadata.create_all(self.engine)

    def append(self, record: AuditRecord) -> int:
        timestamp = record.timestamp or datetime.now(timezone.utc).isoformat()
        with self.engine.begin() as conn:
            result = conn.execute(
                _audit_log.insert().values(
                    actor_id=record.actor_id,
                    actor_name=record.actor_name,
                    action=record.action,
                    resource_type=record.resource_type,
                    detail=record.detail,
                    timestamp=timestamp,
                    ip_address=record.ip_address,
                    user_agent=(record.user_agent or "")[:_MAX_USER_AGENT],
                )
            )
            return result.inserted_primary_key[0]

    def list_recent(
        self,
        limit: int = 100,
        actor_id: int | None = None,
        action_prefix: str | None = None,
    ) -> list[AuditRecord]:
        """Newest first. action_prefix matches dotted action names ("auth." -> all auth events)."""
        query = _audit_log.select()
        if actor_id is not None:
            query = query.where(_audit_log.c.actor_id == actor_id)
        if action_prefix:
            query = query.where(_audit_log.c.action.startswith(action_prefix, autoescape=True))
        query = query.order_by(_audit_log.c.id.desc()).limit(min(max(limit, 1), _MAX_LIST))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_audit_log)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_record(row) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        actor_id=row.actor_id,
        actor_name=row.actor_name,
        action=row.action,
        resource_type=row.resource_type,
        detail=row.detail,
        timestamp=row.timestamp,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )

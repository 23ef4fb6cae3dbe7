"""
vault/store.py -- SQLAlchemy-backed persistence for protected submissions.

Uses SQLAlchemy Core (not ORM) so the dataclasses in vault/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. SubmissionStore is the repository;
_row_to_submission is the mapper.

Invariants enforced here:
  - encrypted_content and signature are both NOT NULL, so a row can never
    hold ciphertext without its signature.
  - Content columns are never updated after insert. Only the grade columns
    change, and they are written as a ciphertext/signature pair in one UPDATE.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = SubmissionStore("sqlite:///:memory:")
    sub_id = store.create(submission)
    store.set_grade(sub_id, sealed.ciphertext, sealed.signature, graded_by="rev")
    store.close()
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, select

from vault.models import Submission

metadata = MetaData()

_submissions = Table(
    "submissions",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("owner_name", String(255), nullable=False),
    Column("filename", String(255), nullable=False),
    Column("content_type", String(100), nullable=False, server_default="text/plain"),
    Column("is_binary", Boolean, nullable=False, server_default="0"),
    Column("encrypted_content", Text, nullable=False),
    Column("signature", String(64), nullable=False),
    Column("encrypted_grade", Text),
    Column("grade_signature", String(64)),
    Column("graded_by", String(255)),
    Column("graded_at", String(32)),
    Column("submitted_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubmissionStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(db_url, connect_args=connect_args)
        metadata.create_all(self.engine)

    def create(self, submission: Submission) -> str:
        """Insert and return the new submission id. Raises ValueError if unsigned."""
        if not submission.encrypted_content or not submission.signature:
            raise ValueError("submission must carry both ciphertext and signature")
        submission_id = uuid.uuid4().hex
        with self.engine.begin() as conn:
            conn.execute(
                _submissions.insert().values(
                    id=submission_id,
                    owner_id=submission.owner_id,
                    owner_name=submission.owner_name,
                    filename=submission.filename,
                    content_type=submission.content_type,
                    is_binary=submission.is_binary,
                    encrypted_content=submission.encrypted_content,
                    signature=submission.signature,
                    submitted_at=submission.submitted_at or _now_iso(),
                )
            )
        return submission_id

    def get(self, submission_id: str) -> Submission | None:
        with self.engine.connect() as conn:
            row = conn.execute(_submissions.select().where(_submissions.c.id == submission_id)).fetchone()
        return _row_to_submission(row) if row is not None else None

    def list_submissions(self, owner_id: int | None = None) -> list[Submission]:
        """Newest first. owner_id restricts to one submitter's records."""
        query = _submissions.select()
        if owner_id is not None:
            query = query.where(_submissions.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_submissions.c.submitted_at.desc())).fetchall()
        return [_row_to_submission(r) for r in rows]

    def iter_all(self):
        """Yield every submission; used by the integrity sweep in main.py."""
        with self.engine.connect() as conn:
            for row in conn.execute(_submissions.select().order_by(_submissions.c.submitted_at)):
                yield _row_to_submission(row)

    def set_grade(
        self, submission_id: str, encrypted_grade: str, grade_signature: str, graded_by: str, overwrite: bool = True
    ) -> bool:
        """Write the sealed grade pair.

        With overwrite=False the UPDATE only matches ungraded rows, so two
        reviewers racing to create the first grade cannot both succeed.
        Returns True if a row was updated.
        """
        if not encrypted_grade or not grade_signature:
            raise ValueError("grade must carry both ciphertext and signature")
        query = _submissions.update().where(_submissions.c.id == submission_id)
        if not overwrite:
            query = query.where(_submissions.c.encrypted_grade.is_(None))
        with self.engine.begin() as conn:
            result = conn.execute(
                query.values(
                    encrypted_grade=encrypted_grade,
                    grade_signature=grade_signature,
                    graded_by=graded_by,
                    graded_at=_now_iso(),
                )
            )
        return result.rowcount > 0

    def delete(self, submission_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_submissions.delete().where(_submissions.c.id == submission_id))
        return result.rowcount > 0

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


def _row_to_submission(row) -> Submission:
    return Submission(
        id=row.id,
        owner_id=row.owner_id,
        owner_name=row.owner_name,
        filename=row.filename,
        content_type=row.content_type,
        is_binary=bool(row.is_binary),
        encrypted_content=row.encrypted_content,
        signature=row.signature,
        encrypted_grade=row.encrypted_grade,
        grade_signature=row.grade_signature,
        graded_by=row.graded_by,
        graded_at=row.graded_at,
        submitted_at=row.submitted_at,
    )

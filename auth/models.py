"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own domain shape.

Layer rule: no imports from api/, audit/, or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of account roles. Values are the persisted/wire form."""

    SUBMITTER = "submitter"
    REVIEWER = "reviewer"
    AUDITOR = "auditor"


class ResourceType(str, Enum):
    SUBMISSION = "submission"
    GRADE = "grade"
    AUDIT_LOG = "audit_log"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Account:
    """An identity that can log in to SubmitVault.

    hashed_password is a bcrypt string; the salt is embedded in it, so there
    is no separate salt column. It is never serialized to API responses.

    failed_attempts counts consecutive failed verifications since the last
    successful full login or the last lock. locked_until is an ISO 8601 UTC
    timestamp, or None when the account is not locked.
    """

    username: str
    role: Role
    hashed_password: str
    id: int | None = None
    mfa_enabled: bool = True
    failed_attempts: int = 0
    locked_until: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Challenge:
    """A one-time passcode tied to one pending login.

    expires_at is an ISO 8601 UTC timestamp. consumed flips to True exactly
    once: on a successful match, or when a newer challenge supersedes it.
    """

    account_id: int
    code: str  # 6 decimal digits
    expires_at: str
    id: int | None = None
    consumed: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """Verified contents of a session token. Never stored server-side."""

    account_id: int
    username: str
    role: Role
    issued_at: int  # unix seconds
    expires_at: int  # unix seconds

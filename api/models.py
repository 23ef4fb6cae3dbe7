"""
API request and response models for SubmitVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
vault/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.

Secrets never appear in a response model: no password hash, no OTP code, no
ciphertext key material.
"""

import base64
import binascii
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from audit.models import AuditRecord
from auth.models import Role
from vault.models import Submission

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.@-]+$"
OTP_PATTERN = r"^\d{6}$"
# Printable ASCII only; the value is echoed as the download Content-Type header.
CONTENT_TYPE_PATTERN = r"^[!-~][ -~]*$"

# 10 MiB of submission text (binary uploads arrive base64 encoded).
MAX_CONTENT_CHARS = 10 * 1024 * 1024


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Password policy is enforced by auth.passwords.check_password_policy, not
    here, so that the rejection is audited and carries the list of unmet rules.
    Only the username is stripped; the password is hashed exactly as sent.
    """

    username: str = Field(min_length=3, max_length=64, pattern=USERNAME_PATTERN)
    password: str = Field(max_length=255)
    role: Role

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class VerifyOTPRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: int = Field(ge=1)
    code: str = Field(pattern=OTP_PATTERN)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    role: Role
    mfa_enabled: bool
    created_at: str


class ChallengeResponse(BaseModel):
    """Returned by POST /auth/login. The code itself is delivered out of band."""

    model_config = ConfigDict(frozen=True)

    mfa_required: bool = True
    account_id: int
    challenge_id: int
    expires_at: str
    message: str = "Verification code sent."


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account_id: int
    username: str
    role: Role


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: int
    username: str
    role: Role
    expires_at: int


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class SubmissionCreate(BaseModel):
    """Request body for POST /api/v1/submissions.

    Binary files are sent as base64 text with is_binary=true. The base64 text
    itself is what gets encrypted and signed, so a download returns exactly
    the bytes the client uploaded.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    filename: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1, max_length=MAX_CONTENT_CHARS)
    content_type: str = Field(default="text/plain", max_length=100, pattern=CONTENT_TYPE_PATTERN)
    is_binary: bool = False

    @field_validator("filename")
    @classmethod
    def no_path_components(cls, value: str) -> str:
        """Reject names with directory separators; they end up in Content-Disposition."""
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError("filename must not contain path components")
        if any(ord(c) < 32 or ord(c) == 127 for c in value):
            raise ValueError("filename must not contain control characters")
        return value

    @model_validator(mode="after")
    def binary_is_base64(self) -> "SubmissionCreate":
        if self.is_binary:
            try:
                base64.b64decode(self.content, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("binary content must be valid base64") from exc
        return self


class SubmissionSummary(BaseModel):
    """Submission metadata. Never includes plaintext or ciphertext."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: int
    owner_name: str
    filename: str
    content_type: str
    is_binary: bool
    signature: str
    submitted_at: str
    graded: bool
    graded_by: Optional[str] = None
    graded_at: Optional[str] = None

    @classmethod
    def from_submission(cls, sub: Submission) -> "SubmissionSummary":
        return cls(
            id=sub.id,
            owner_id=sub.owner_id,
            owner_name=sub.owner_name,
            filename=sub.filename,
            content_type=sub.content_type,
            is_binary=sub.is_binary,
            signature=sub.signature,
            submitted_at=sub.submitted_at,
            graded=sub.is_graded,
            graded_by=sub.graded_by,
            graded_at=sub.graded_at,
        )


class SubmissionContentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    filename: str
    content_type: str
    is_binary: bool
    content: str
    signature_valid: bool


class IntegrityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    signature_valid: bool


class GradeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    grade: str = Field(min_length=1, max_length=20)
    feedback: str = Field(default="", max_length=5000)


class GradeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    submission_id: str
    grade: str
    feedback: str
    graded_by: Optional[str]
    graded_at: Optional[str]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    actor_id: Optional[int]
    actor_name: Optional[str]
    action: str
    resource_type: str
    detail: str
    timestamp: str
    ip_address: str
    user_agent: str

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditRecordResponse":
        return cls(
            id=record.id,
            actor_id=record.actor_id,
            actor_name=record.actor_name,
            action=record.action,
            resource_type=record.resource_type,
            detail=record.detail,
            timestamp=record.timestamp,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
        )


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]

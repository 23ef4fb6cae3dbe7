"""
core/errors.py -- Security error taxonomy for SubmitVault.

Every rejected security operation raises one of these. Each carries:
  code        -- stable machine-readable identifier for API clients
  message     -- client-safe text; never includes internal state
  status_code -- HTTP status the API layer maps it to

api/main.py has a single exception handler for SecurityError that renders the
standard ErrorResponse envelope. Anything that is NOT a SecurityError (storage
unavailable, bad configuration) falls through to the generic 500 handler, so
operational failures are never reported as credential problems.

Layer rule: core/ is the kernel. No imports from api/, auth/, audit/, or vault/.
"""

from __future__ import annotations

import math


class SecurityError(Exception):
    """Base class for recoverable, client-visible security rejections."""

    code: str = "security_error"
    message: str = "Request rejected."
    status_code: int = 400

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class InvalidCredential(SecurityError):
    code = "invalid_credentials"
    message = "Invalid username or password."
    status_code = 401


class PolicyViolation(InvalidCredential):
    """Registration or password-change input that fails the credential policy."""

    code = "policy_violation"
    message = "Password does not meet the credential policy."
    status_code = 422


class AccountLocked(SecurityError):
    code = "account_locked"
    message = "Account is temporarily locked."
    status_code = 423

    def __init__(self, remaining_seconds: int) -> None:
        self.remaining_seconds = max(0, int(remaining_seconds))
        minutes = max(1, math.ceil(self.remaining_seconds / 60))
        super().__init__(f"Account is locked. Try again in {minutes} minute(s).")


class ChallengeExpired(SecurityError):
    code = "challenge_expired"
    message = "Verification code has expired. Log in again."
    status_code = 401


class ChallengeMismatch(SecurityError):
    code = "challenge_mismatch"
    message = "Invalid verification code."
    status_code = 401


class ChallengeConsumed(SecurityError):
    code = "challenge_consumed"
    message = "Verification code has already been used."
    status_code = 401


class TokenInvalid(SecurityError):
    code = "token_invalid"
    message = "Invalid session token."
    status_code = 401


class TokenExpired(SecurityError):
    code = "token_expired"
    message = "Session has expired. Log in again."
    status_code = 401


class Forbidden(SecurityError):
    code = "forbidden"
    message = "Insufficient permissions."
    status_code = 403


class DecryptionFailed(SecurityError):
    code = "content_unreadable"
    message = "Stored content could not be decrypted."
    status_code = 422


class SignatureMismatch(SecurityError):
    code = "signature_mismatch"
    message = "Content integrity check failed."
    status_code = 409

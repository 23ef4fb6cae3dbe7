"""
auth/service.py -- Registration and two-step login orchestration.

AuthService wires the leaf components together and owns the audit trail for
authentication transitions. Each public method produces exactly one audit
record per outcome, success or failure.

Login flow:
  login(username, password)
    -> account lookup (unknown user still runs bcrypt against DUMMY_HASH) [C1]
    -> lockout check (locked accounts are rejected BEFORE bcrypt runs)
    -> password verify (failure counts toward lockout)
    -> OTP challenge issued
  verify_challenge(account_id, code)
    -> lockout check
    -> OTP verify (mismatch counts toward lockout)
    -> failure counter reset, session token minted

Unknown usernames and wrong passwords both raise InvalidCredential with the
same message, so responses do not reveal which usernames exist.

Layer rule: no imports from api/ or vault/. Imports from core/ and audit/ are allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from audit.models import Origin
from audit.sink import AuditSink
from auth.lockout import LockoutPolicy
from auth.models import Account, Claims, Role
from auth.otp import OTPIssuer
from auth.passwords import DUMMY_HASH, PasswordHasher, check_password_policy
from auth.store import AccountStore
from auth.tokens import TokenService
from core.errors import (
    AccountLocked,
    ChallengeConsumed,
    ChallengeExpired,
    ChallengeMismatch,
    InvalidCredential,
    PolicyViolation,
)

logger = logging.getLogger("submitvault.auth")

# Audit resource label for authentication events. Authorization events use
# the ResourceType being accessed instead.
AUTH_RESOURCE = "auth"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChallengeIssued:
    account_id: int
    username: str
    challenge_id: int
    expires_at: str
    code: str  # delivered out of band; never put in an API response


@dataclass(frozen=True)
class LoginResult:
    token: str
    claims: Claims


class AuthService:
    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        otp: OTPIssuer,
        tokens: TokenService,
        lockout: LockoutPolicy,
        audit: AuditSink,
        password_min_length: int = 12,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.otp = otp
        self.tokens = tokens
        self.lockout = lockout
        self.audit = audit
        self.password_min_length = password_min_length
        self.clock = clock

    def _record(self, account: Account | None, action: str, detail: str, origin: Origin | None) -> None:
        if account is None:
            self.audit.record(None, action, AUTH_RESOURCE, detail, origin)
        else:
            self.audit.record(account.id, action, AUTH_RESOURCE, detail, origin, account.username)

    # ------------------------------------------------------------------
    # Registration and password change
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, role: Role | str, origin: Origin | None = None) -> Account:
        """Validate policy, hash, and store a new account.

        Raises PolicyViolation for a weak password or a taken username.
        Uniqueness is enforced by the UNIQUE index, so two concurrent
        registrations for the same name cannot both succeed.
        """
        role = Role(role)
        try:
            check_password_policy(password, self.password_min_length)
        except PolicyViolation as exc:
            self._record(None, "auth.register.rejected", f"Registration for {username!r}: {exc.detail}", origin)
            raise

        account = Account(username=username, role=role, hashed_password=self.hasher.hash(password))
        try:
            account.id = self.store.create_account(account)
        except IntegrityError as exc:
            self._record(None, "auth.register.rejected", f"Registration for {username!r}: username taken", origin)
            raise PolicyViolation("Username is not available.") from exc

        self._record(account, "auth.register", f"Account registered with role {role.value}", origin)
        logger.info("Account registered: %s (%s)", username, role.value)
        return self.store.get_by_id(account.id) or account

    def change_password(self, account_id: int, current: str, new: str, origin: Origin | None = None) -> None:
        """Raises InvalidCredential if current does not verify, PolicyViolation if new is weak."""
        account = self.store.get_by_id(account_id)
        if account is None or not self.hasher.verify(current, account.hashed_password):
            self.audit.record(
                account_id, "auth.password_change.failed", AUTH_RESOURCE, "Current password did not verify", origin
            )
            raise InvalidCredential("Current password is incorrect.")
        try:
            check_password_policy(new, self.password_min_length)
        except PolicyViolation as exc:
            self._record(account, "auth.password_change.rejected", f"New password rejected: {exc.detail}", origin)
            raise
        self.store.update_password(account_id, self.hasher.hash(new))
        self._record(account, "auth.password_change", "Password changed", origin)

    # ------------------------------------------------------------------
    # Login step 1: password
    # ------------------------------------------------------------------

    def login(self, username: str, password: str, origin: Origin | None = None) -> ChallengeIssued:
        """Check the password and issue an OTP challenge.

        Raises InvalidCredential or AccountLocked.
        """
        account = self.store.get_by_username(username)
        if account is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            self.hasher.verify(password, DUMMY_HASH)
            self._record(None, "auth.login.failed", f"Unknown username {username!r}", origin)
            raise InvalidCredential()

        now = self.clock()
        try:
            self.lockout.ensure_unlocked(account, now)
        except AccountLocked as exc:
            self._record(account, "auth.login.blocked", f"Account locked for {exc.remaining_seconds}s", origin)
            raise

        if not self.hasher.verify(password, account.hashed_password):
            updated = self.lockout.record_failure(self.store, account, now)
            if updated is not None and self.lockout.remaining(updated, now) > 0:
                detail = "Wrong password; account locked"
            else:
                detail = f"Wrong password (attempt {updated.failed_attempts if updated else '?'})"
            self._record(account, "auth.login.failed", detail, origin)
            raise InvalidCredential()

        challenge = self.otp.issue(account.id)
        self._record(account, "auth.challenge.issued", "Password verified, one-time code issued", origin)
        return ChallengeIssued(
            account_id=account.id,
            username=account.username,
            challenge_id=challenge.id,
            expires_at=challenge.expires_at,
            code=challenge.code,
        )

    # ------------------------------------------------------------------
    # Login step 2: one-time code
    # ------------------------------------------------------------------

    def verify_challenge(self, account_id: int, code: str, origin: Origin | None = None) -> LoginResult:
        """Verify the OTP and mint a session token.

        Raises ChallengeExpired, ChallengeMismatch, ChallengeConsumed, or AccountLocked.
        """
        account = self.store.get_by_id(account_id)
        if account is None:
            self._record(None, "auth.challenge.failed", f"Verification for unknown account {account_id}", origin)
            raise ChallengeMismatch()

        now = self.clock()
        try:
            self.lockout.ensure_unlocked(account, now)
        except AccountLocked as exc:
            self._record(account, "auth.challenge.blocked", f"Account locked for {exc.remaining_seconds}s", origin)
            raise

        try:
            self.otp.verify(account.id, code)
        except ChallengeMismatch:
            self.lockout.record_failure(self.store, account, now)
            self._record(account, "auth.challenge.failed", "One-time code mismatch", origin)
            raise
        except ChallengeExpired:
            self._record(account, "auth.challenge.failed", "One-time code expired", origin)
            raise
        except ChallengeConsumed:
            self._record(account, "auth.challenge.failed", "One-time code already used", origin)
            raise

        self.lockout.record_success(self.store, account)
        token = self.tokens.issue(account.id, account.username, account.role)
        claims = self.tokens.verify(token)
        self._record(account, "auth.login.success", "Two-factor login completed", origin)
        return LoginResult(token=token, claims=claims)

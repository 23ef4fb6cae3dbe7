"""
auth/otp.py -- One-time passcode challenges for the second login factor.

Codes are uniform over 000000-999999 from the secrets module. They are not
time-based and not derived from account data, so knowing the account tells
an attacker nothing about the code.

Reissue is strict: AccountStore.replace_challenge() consumes every earlier
unconsumed challenge for the account before inserting the new one, so only
the newest challenge can ever verify.

Layer rule: no imports from api/, audit/, or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Challenge
from auth.store import AccountStore
from core.errors import ChallengeConsumed, ChallengeExpired, ChallengeMismatch

CODE_DIGITS = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    return f"{secrets.randbelow(10**CODE_DIGITS):0{CODE_DIGITS}d}"


class OTPIssuer:
    def __init__(
        self,
        store: AccountStore,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    def issue(self, account_id: int) -> Challenge:
        """Create and persist a fresh challenge, superseding any earlier ones."""
        challenge = Challenge(
            account_id=account_id,
            code=generate_code(),
            expires_at=(self.clock() + self.ttl).isoformat(),
        )
        challenge.id = self.store.replace_challenge(challenge)
        return challenge

    def verify(self, account_id: int, code: str) -> Challenge:
        """Consume the account's newest challenge if code matches.

        Check order: consumed, then expired, then code. An expired challenge
        never verifies whatever its flag says. The final consume is a
        compare-and-set, so of two concurrent correct submissions exactly one
        succeeds and the other sees ChallengeConsumed.

        Raises ChallengeMismatch, ChallengeExpired, or ChallengeConsumed.
        """
        challenge = self.store.get_latest_challenge(account_id)
        if challenge is None:
            raise ChallengeMismatch()
        if challenge.consumed:
            raise ChallengeConsumed()
        if self.clock() >= datetime.fromisoformat(challenge.expires_at):
            raise ChallengeExpired()
        if not hmac.compare_digest(challenge.code.encode("ascii"), str(code).strip().encode("utf-8")):
            raise ChallengeMismatch()
        if not self.store.consume_challenge(challenge.id):
            raise ChallengeConsumed()
        challenge.consumed = True
        return challenge

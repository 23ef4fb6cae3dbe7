"""
auth/lockout.py -- Account lockout after repeated failed verifications.

State machine per account:
  Unlocked --(threshold consecutive failures)--> Locked(until=now+duration)
  Locked   --(time elapses)--> Unlocked
  any      --(successful password + OTP login)--> Unlocked, counter 0

The policy object only decides; the counter itself lives in AccountStore and
is mutated with a single conditional UPDATE (see register_failure).

Layer rule: no imports from api/, audit/, or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from auth.models import Account
from auth.store import AccountStore
from core.errors import AccountLocked

logger = logging.getLogger("submitvault.auth.lockout")


class LockoutPolicy:
    def __init__(self, threshold: int = 3, duration_seconds: int = 900) -> None:
        self.threshold = threshold
        self.duration = timedelta(seconds=duration_seconds)

    def remaining(self, account: Account, now: datetime) -> int:
        """Seconds until the lock lifts, or 0 if the account is not locked."""
        if not account.locked_until:
            return 0
        delta = datetime.fromisoformat(account.locked_until) - now
        return max(0, math.ceil(delta.total_seconds()))

    def ensure_unlocked(self, account: Account, now: datetime) -> None:
        remaining = self.remaining(account, now)
        if remaining > 0:
            raise AccountLocked(remaining)

    def record_failure(self, store: AccountStore, account: Account, now: datetime) -> Account | None:
        """Count one failure; returns the updated account (locked_until set if this tripped the lock)."""
        updated = store.register_failure(account.id, self.threshold, (now + self.duration).isoformat())
        if updated is not None and self.remaining(updated, now) > 0:
            logger.warning("Account %s locked for %ds", account.username, int(self.duration.total_seconds()))
        return updated

    def record_success(self, store: AccountStore, account: Account) -> None:
        store.reset_failures(account.id)

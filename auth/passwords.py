"""
auth/passwords.py -- Password policy and bcrypt hashing.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The salt is generated per
       call by bcrypt.gensalt() and embedded in the returned hash string, so it
       is never derived from the password or username. bcrypt.checkpw does the
       comparison in constant time.

  Policy: enforced by check_password_policy() at registration and password
       change only. Verification never re-checks policy -- accounts created
       under an older policy must still be able to log in.

  Timing equalization [C1]: DUMMY_HASH lets the login flow run bcrypt even
       when the username does not exist, so response time does not reveal
       which usernames are registered.

Layer rule: no imports from api/, audit/, or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import string

import bcrypt

from core.errors import InvalidCredential, PolicyViolation

# bcrypt silently truncates input past 72 bytes; reject instead of truncating.
_BCRYPT_MAX_BYTES = 72

_SYMBOLS = set(string.punctuation)


def check_password_policy(password: str, min_length: int = 12) -> None:
    """Raise PolicyViolation unless the password meets the credential policy.

    Policy: at least min_length characters, at most 72 UTF-8 bytes, and at
    least one uppercase letter, lowercase letter, digit, and symbol. The
    detail lists every unmet rule so the client can show them all at once.
    """
    if not password:
        raise PolicyViolation(detail="Password must not be empty.")

    problems: list[str] = []
    if len(password) < min_length:
        problems.append(f"at least {min_length} characters")
    if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
        problems.append(f"at most {_BCRYPT_MAX_BYTES} bytes")
    if not any(c.isupper() for c in password):
        problems.append("an uppercase letter")
    if not any(c.islower() for c in password):
        problems.append("a lowercase letter")
    if not any(c.isdigit() for c in password):
        problems.append("a digit")
    if not any(c in _SYMBOLS for c in password):
        problems.append("a symbol")
    if problems:
        raise PolicyViolation(detail="Password requires " + ", ".join(problems) + ".")


class PasswordHasher:
    """bcrypt hash/verify with a fixed cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Return a bcrypt hash string (salt embedded). Raises InvalidCredential on empty input."""
        if not password:
            raise InvalidCredential("Password must not be empty.")
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A malformed stored hash is treated as a non-match; bcrypt raises
        ValueError for it.
        """
        if not password or not hashed:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False


# Computed once at import so the first unknown-username login is not
# measurably slower than later ones [C1].
DUMMY_HASH: str = PasswordHasher().hash("submitvault_timing_dummy")

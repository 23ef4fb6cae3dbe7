"""
auth/tokens.py -- Session token issue and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       account_id, username (sub), role, iat, and exp. Verification is a pure
       function of the token and the secret -- no store lookup -- so any
       worker can verify any token.

  Errors: verify() raises TokenExpired past exp and TokenInvalid for every
       other failure (bad signature, malformed structure, missing claims,
       unknown role). Callers never see a None.

  Rotation: changing SECRET_KEY invalidates every outstanding token. That is
       the intended fail-safe.

  Revocation: none. If it becomes a requirement, add a short-lived denylist
       keyed by a jti claim and consult it in verify().

Layer rule: no imports from api/, audit/, or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Claims, Role
from core.errors import TokenExpired, TokenInvalid

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mint and verify signed session tokens.

    clock is injectable so tests can issue tokens in the past; expiry checks
    in verify() are done by python-jose against the real wall clock.
    """

    def __init__(
        self,
        secret_key: str,
        lifetime_seconds: int = 24 * 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.lifetime_seconds = lifetime_seconds
        self.clock = clock

    def issue(self, account_id: int, username: str, role: Role | str) -> str:
        issued = self.clock()
        expire = issued + timedelta(seconds=self.lifetime_seconds)
        payload = {
            "sub": username,
            "account_id": account_id,
            "role": Role(role).value,
            "iat": int(issued.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Claims:
        """Decode and verify a token. Raises TokenExpired or TokenInvalid."""
        if not token:
            raise TokenInvalid()
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid() from exc

        try:
            return Claims(
                account_id=int(payload["account_id"]),
                username=str(payload["sub"]),
                role=Role(payload["role"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid() from exc

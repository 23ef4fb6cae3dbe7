"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SubmitVault happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.
Components (token service, content protector, OTP issuer, lockout policy) never
call get_settings() themselves: api/main.py builds them from a single Settings
instance and injects the values through their constructors.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, encryption_key -> ENCRYPTION_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates missing secrets with a warning; production
      mode refuses to start without them.

Security notes:
  [M6] SECRET_KEY and CONTENT_SIGNING_KEY shorter than 32 chars are rejected.
  [M7] In production mode a missing secret is a hard startup failure.
  [K1] ENCRYPTION_KEY must decode to exactly 32 bytes (AES-256).
  [K2] CONTENT_SIGNING_KEY must differ from SECRET_KEY so a leaked session
       signing key cannot forge content signatures and vice versa.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
audit/, or vault/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("submitvault.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'submitvault.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # Empty string is the sentinel for "not configured". The model_validator
    # either generates a dev value or raises, so callers never see "".
    secret_key: str = ""
    encryption_key: str = ""  # 64 hex chars
    content_signing_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 3600
    otp_ttl_seconds: int = 5 * 60
    lockout_threshold: int = 3
    lockout_seconds: int = 15 * 60
    bcrypt_rounds: int = 12
    password_min_length: int = 12

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # Lists are read from the environment as JSON, e.g.
    # ALLOWED_HOSTS='["portal.example.edu"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [M6] [M7] [K1] [K2].

        Dev mode (DEBUG=true): generate any missing secret with a warning.
            Tokens and encrypted content will not survive a restart.

        Production mode: refuse to start if any secret is missing.
        """
        missing = [
            name for name in ("secret_key", "encryption_key", "content_signing_key") if not getattr(self, name)
        ]
        if missing:
            if not self.debug:
                raise ValueError(
                    f"{', '.join(m.upper() for m in missing)} required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            for name in missing:
                setattr(self, name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Data will not be readable after restart.", ", ".join(missing))

        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if len(self.content_signing_key) < 32:
            raise ValueError("CONTENT_SIGNING_KEY must be at least 32 characters.")
        if self.content_signing_key == self.secret_key:
            raise ValueError("CONTENT_SIGNING_KEY must differ from SECRET_KEY.")
        try:
            key_bytes = bytes.fromhex(self.encryption_key)
        except ValueError as exc:
            raise ValueError("ENCRYPTION_KEY must be hex encoded.") from exc
        if len(key_bytes) != 32:
            raise ValueError("ENCRYPTION_KEY must decode to exactly 32 bytes (64 hex chars).")
        if self.lockout_threshold < 1:
            raise ValueError("LOCKOUT_THRESHOLD must be at least 1.")
        return self

    @property
    def encryption_key_bytes(self) -> bytes:
        return bytes.fromhex(self.encryption_key)

    @property
    def content_signing_key_bytes(self) -> bytes:
        return self.content_signing_key.encode("utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

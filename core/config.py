"""
core/config.py -- Gatekeeper settings, read from the environment by pydantic-settings.

This is the only module that reads environment variables. Everything else
calls get_settings(), which builds one Settings instance on first use and
caches it (lru_cache). Values come from process environment first, then an
optional .env file; field names map to upper-case variable names, so
`lockout_max_attempts` reads LOCKOUT_MAX_ATTEMPTS. List fields (ALLOWED_HOSTS,
ALLOWED_ORIGINS) take JSON arrays.

Cross-field rules live in one @model_validator(mode="after") so they run
once every field has been resolved.

Security notes:
  SECRET_KEY has no default and no generated fallback. A missing key, or one
  shorter than 32 characters, stops the process with ConfigurationError.
  There is no DEBUG/development switch: nothing in this file can turn off
  hashing, token verification or request validation.

  BCRYPT_ROUNDS below 10 is rejected -- a low cost factor makes offline
  brute-force of a leaked hash cheap.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

logger = logging.getLogger("gatekeeper.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'gatekeeper.db'}"

_MIN_SECRET_LENGTH = 32
_MIN_BCRYPT_ROUNDS = 10
_MAX_BCRYPT_ROUNDS = 15


class Settings(BaseSettings):
    """Gatekeeper configuration.

    Everything except SECRET_KEY has a default. The model_validator enforces
    the secret and hashing policy at startup.

    Rate limits use slowapi notation ("10/minute"); durations are seconds.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator
    # below refuses to start with it.
    secret_key: str = ""
    token_expire_seconds: int = Field(default=24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Passwords and lockout
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12
    lockout_max_attempts: int = Field(default=5, ge=1)
    lockout_duration_seconds: int = Field(default=2 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    rate_limit_max: int = Field(default=100, ge=1)
    rate_limit_window_seconds: int = Field(default=15 * 60, ge=1)
    login_rate_limit: str = "10/minute"

    allowed_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    log_level: str = "INFO"

    @property
    def default_rate_limit(self) -> str:
        """Default per-IP limit in slowapi/limits notation, e.g. "100 per 900 seconds"."""
        return f"{self.rate_limit_max} per {self.rate_limit_window_seconds} seconds"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_security_policy(self) -> "Settings":
        """Refuse to start without a usable signing key or with weak hashing."""
        if not self.secret_key:
            raise ValueError("SECRET_KEY is required. Set SECRET_KEY in your environment or .env file.")
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            raise ValueError(f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and {_MAX_BCRYPT_ROUNDS}.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Built on first call and cached. A pydantic ValidationError is re-raised as
    ConfigurationError so startup code has one exception type to treat as fatal.

    Tests that change environment variables call get_settings.cache_clear()
    before and after.
    """
    try:
        return Settings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise ConfigurationError(str(exc)) from exc

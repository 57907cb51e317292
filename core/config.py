"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Scribe happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  frozen=True: the Settings value is immutable once constructed. It is built
      once at process start and injected into AuthService and SessionIssuer.

Security notes:
  JWT_SECRET and JWT_REFRESH_SECRET are both required. A missing secret is a
  hard startup failure in every mode -- the process must not serve traffic
  without them. The two secrets must differ: a leaked access-signing secret
  must not be usable to forge refresh tokens.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("scribe.config")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d|w)?\s*$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_duration(value: str | int) -> timedelta:
    """Convert an environment-style duration ("15m", "7d", "3600") to a timedelta.

    A bare number is read as seconds. Supported units: ms, s, m, h, d, w.
    Raises ValueError for anything else, including zero.
    """
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(value)
        if match is None:
            raise ValueError(f"Invalid duration {value!r}. Use forms like '15m', '12h' or '7d'.")
        amount, unit = int(match.group(1)), match.group(2) or "s"
        if unit == "ms":
            return _positive(timedelta(milliseconds=amount), value)
        seconds = amount * _UNIT_SECONDS[unit]
    return _positive(timedelta(seconds=seconds), value)


def _positive(delta: timedelta, raw: str | int) -> timedelta:
    if delta <= timedelta(0):
        raise ValueError(f"Duration must be positive, got {raw!r}.")
    return delta


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Secrets have no usable default. Everything else does, so tests only need
    to export JWT_SECRET and JWT_REFRESH_SECRET.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = "sqlite:///scribe.db"
    cors_origins: str = "http://localhost,http://localhost:3000"

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below refuses to start in that case.
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_expires_in: str = "15m"
    jwt_refresh_expires_in: str = "7d"
    # Server-side expiry stamp for the stored refresh fingerprint. Independent
    # of the refresh token's own embedded exp claim.
    jwt_refresh_expires_days: int = 7

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    bcrypt_salt_rounds: int = 12

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    # Mirrors auth.models.RoleCode; core/ may not import from auth/.
    default_role_code: Literal["ADMIN", "BLOGGER"] = "BLOGGER"
    # Fallback lookup by display name, for databases seeded before role codes existed.
    default_role_name: str = "blogger"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_expires_in", "jwt_refresh_expires_in")
    @classmethod
    def validate_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("bcrypt_salt_rounds")
    @classmethod
    def validate_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_SALT_ROUNDS must be between 4 and 31.")
        return value

    @field_validator("jwt_refresh_expires_days")
    @classmethod
    def validate_refresh_days(cls, value: int) -> int:
        if value < 1:
            raise ValueError("JWT_REFRESH_EXPIRES_DAYS must be at least 1.")
        return value

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Refuse to start without both signing secrets, or with a shared one.

        There is no dev-mode fallback secret.
        """
        if not self.jwt_secret:
            raise ValueError("JWT_SECRET is not defined. Set it in your environment or .env file.")
        if not self.jwt_refresh_secret:
            raise ValueError("JWT_REFRESH_SECRET is not defined. Set it in your environment or .env file.")
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different values.")
        if self.debug and (len(self.jwt_secret) < 32 or len(self.jwt_refresh_secret) < 32):
            logger.warning("WARNING: JWT signing secrets shorter than 32 characters. Do not use them in production.")
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def access_ttl(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)

    @property
    def refresh_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expires_in)

    @property
    def refresh_store_ttl(self) -> timedelta:
        return timedelta(days=self.jwt_refresh_expires_days)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly; tests construct Settings(...) explicitly and inject it.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Teamgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET, jwt_ttl -> JWT_TTL).

  @model_validator(mode="after"): DEBUG-conditional defaults. Dev mode
      generates a signing key and falls back to a local SQLite file; production
      mode refuses to start without JWT_SECRET and DATABASE_URL.

Durations (JWT_TTL, REFRESH_TOKEN_TTL) use the compact "24h" / "90m" /
"1h30m" syntax. An unparseable duration logs a warning and keeps the default
rather than aborting startup.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or org/.
"""

import logging
import re
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("teamgate.config")

_DEV_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'teamgate_dev.db'}"

_DEFAULT_JWT_TTL = timedelta(hours=24)
_DEFAULT_REFRESH_TTL = timedelta(hours=168)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> timedelta:
    """Parse a compact duration string such as "24h", "15m" or "1h30m".

    Raises ValueError if the string is empty or contains anything other than
    <number><unit> groups.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=seconds)


def _coerce_ttl(value, default: timedelta, name: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    try:
        return parse_duration(str(value))
    except ValueError:
        logger.warning("Invalid %s %r, falling back to %s", name, value, default)
        return default


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field has a default so Settings() can be built in test environments
    without a real .env file. The model_validator enforces the production rules.
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
    app_port: int = 8080
    # Empty string means "not configured"; resolved by the validator below.
    database_url: str = ""
    allowed_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_secret: str = ""
    jwt_ttl: timedelta = _DEFAULT_JWT_TTL
    refresh_token_ttl: timedelta = _DEFAULT_REFRESH_TTL

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_ttl", mode="before")
    @classmethod
    def parse_jwt_ttl(cls, value):
        return _coerce_ttl(value, _DEFAULT_JWT_TTL, "JWT_TTL")

    @field_validator("refresh_token_ttl", mode="before")
    @classmethod
    def parse_refresh_ttl(cls, value):
        return _coerce_ttl(value, _DEFAULT_REFRESH_TTL, "REFRESH_TOKEN_TTL")

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Resolve JWT_SECRET and DATABASE_URL according to DEBUG.

        Dev mode (DEBUG=true): a missing secret is generated (tokens do not
            survive a restart) and a missing database URL points at a local
            SQLite file.

        Production mode: both are required. A secret shorter than 32
            characters is rejected in either mode.
        """
        if not self.jwt_secret:
            if self.debug:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated JWT_SECRET. Tokens will not survive a restart.")
            else:
                raise ValueError(
                    "JWT_SECRET is required in production mode. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if not self.database_url:
            if self.debug:
                self.database_url = _DEV_DB_URL
                logger.warning("DATABASE_URL not set, using %s", _DEV_DB_URL)
            else:
                raise ValueError("DATABASE_URL is required in production mode.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

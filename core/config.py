"""
core/config.py -- Centralized application configuration via pydantic-settings.

Every SegreGate setting is read here and nowhere else; other modules call
get_settings() rather than touching os.environ.

  get_settings() is wrapped in lru_cache, so Settings is built on first use and
  shared afterwards. Tests that need different values build Settings(...)
  directly or clear the cache.

  Each field maps to the upper-case environment variable of the same name
  (access_token_secret -> ACCESS_TOKEN_SECRET); a .env file is read if present.

  The model_validator runs once all fields are loaded. With DEBUG=true it fills
  in throwaway secrets and localhost origins and warns; otherwise it refuses to
  start without them.

Security notes:
  [S1] Two signing secrets. Access and refresh tokens are signed with different
       keys, so a leaked access secret cannot forge refresh tokens. Equal
       secrets are rejected outright.

  [S2] Secrets shorter than 32 chars are rejected. HS256 relies on key entropy.

  [S3] An empty CORS allow-list in production is a startup failure, not a
       silent "allow nothing" or "allow everything".

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or client/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("segregate.config")

_DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


class Settings(BaseSettings):
    """SegreGate settings. Every field has a default so DEBUG=true works with no env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The validator either
    # generates a dev secret or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    cors_allowed_origins: Annotated[list[str], NoDecode] = []
    login_rate_limit: str = "10/minute"

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        """Accept a comma-separated string as well as a list."""
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_security(self) -> "Settings":
        """Enforce the secret and origin policy [S1][S2][S3].

        Dev mode (DEBUG=true): missing values are generated or defaulted with a
            warning. Tokens will not survive a restart -- fine for local dev.

        Production mode: every missing value is a hard failure.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            if getattr(self, name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())

        if len(self.access_token_secret) < 32 or len(self.refresh_token_secret) < 32:
            raise ValueError("Token secrets must be at least 32 characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")

        if not self.cors_allowed_origins:
            if not self.debug:
                raise ValueError("CORS_ALLOWED_ORIGINS is required in production mode.")
            self.cors_allowed_origins = list(_DEV_ORIGINS)
            logger.warning("CORS_ALLOWED_ORIGINS not set, allowing %s", ", ".join(_DEV_ORIGINS))

        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call."""
    return Settings()

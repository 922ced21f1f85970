"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for tenant-rbac happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. identity_secret -> IDENTITY_SECRET).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used for the DEBUG-conditional IDENTITY_SECRET logic: dev
      mode generates a key with a warning, production mode refuses to start
      without one.

Security notes:
  IDENTITY_SECRET shorter than 32 chars is rejected outright. It is the HS256
  key identity tokens from the external provider are verified with.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or rbac/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("rbac.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'rbac' / 'tenant_rbac.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Identity provider (token verification only, issuance is external)
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    identity_secret: str = ""
    identity_algorithm: str = "HS256"
    identity_audience: Optional[str] = None
    identity_issuer: Optional[str] = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    api_rate_limit: str = "120/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_identity_secret(self) -> "Settings":
        """Enforce the IDENTITY_SECRET policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens minted against the previous key stop verifying on restart.

        Production mode (DEBUG=false or not set): refuse to start if
            IDENTITY_SECRET is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.identity_secret:
            if self.debug:
                self.identity_secret = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated IDENTITY_SECRET. Tokens will not verify across restarts.")
            else:
                raise ValueError(
                    "IDENTITY_SECRET is required in production mode. "
                    "Set IDENTITY_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.identity_secret) < 32:
            raise ValueError("IDENTITY_SECRET must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

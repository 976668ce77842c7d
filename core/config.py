"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the User API happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Both DATABASE_URL and SECRET_KEY are
      mandatory; there is no fallback signing key in any mode.

Security notes:
  [S1] SECRET_KEY shorter than 32 chars is rejected outright. JWT HS256
       signing relies on key entropy -- a short key weakens every token.

  [S2] A missing SECRET_KEY is a hard startup failure. Tokens signed with a
       hardcoded or generated key would either be forgeable or silently
       invalidated on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("userapi.config")

AuthMode = Literal["basic", "bearer", "none"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Only the server and auth knobs have defaults. DATABASE_URL and SECRET_KEY
    must be supplied externally; the model_validator refuses to build a
    Settings object without them.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `auth_mode` reads from AUTH_MODE, `port` reads from PORT.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator raises.
    database_url: str = ""

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"  # nosec B104 -- container deployments bind all interfaces
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secret_key: str = ""
    # Which gate protects /users: HTTP Basic, JWT bearer, or nothing.
    auth_mode: AuthMode = "basic"
    # When true the bearer gate re-reads the record on every request and
    # rejects tokens whose token_version snapshot is stale.
    enforce_token_version: bool = True
    token_expire_seconds: int = 3600
    protect_docs: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Refuse to start without a store URL or a strong signing key [S1][S2]."""
        if not self.database_url:
            raise ValueError("DATABASE_URL is required. Set it in your environment or .env file.")
        if not self.secret_key:
            raise ValueError("SECRET_KEY is required. Set it in your environment or .env file.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

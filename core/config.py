"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Marquee happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. bcrypt_cost -> BCRYPT_COST). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Rejects settings that would make the auth core unsafe (a bcrypt
      cost outside the library's range, non-positive token lifetimes).

Token lifetimes and the bcrypt cost factor are configuration inputs rather
than constants: the defaults match the historical behaviour (3-day activation
tokens, cost 12) but deployments may tune them.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or movies/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("marquee.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'marquee.db'}"


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

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Fixed per-statement timeout. Surfaced as StorageFault when exceeded.
    db_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Credentials and tokens
    # ------------------------------------------------------------------

    bcrypt_cost: int = 12
    activation_token_ttl_seconds: int = 3 * 24 * 60 * 60
    authentication_token_ttl_seconds: int = 24 * 60 * 60
    password_reset_token_ttl_seconds: int = 45 * 60

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    # Granted to every newly registered user.
    default_permissions: list[str] = ["movies:read"]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    max_page_size: int = 100

    # ------------------------------------------------------------------
    # Rate limiting / background work
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    background_workers: int = 4

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Refuse to start with settings the auth core cannot honour.

        bcrypt only accepts log-rounds between 4 and 31. Token lifetimes and
        the storage timeout must be positive: a zero TTL would issue tokens
        that are already expired, and a zero timeout would fail every query.
        """
        if not 4 <= self.bcrypt_cost <= 31:
            raise ValueError("BCRYPT_COST must be between 4 and 31.")
        for name in (
            "activation_token_ttl_seconds",
            "authentication_token_ttl_seconds",
            "password_reset_token_ttl_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of seconds.")
        if self.db_timeout_seconds <= 0:
            raise ValueError("DB_TIMEOUT_SECONDS must be positive.")
        if self.max_page_size < 1:
            raise ValueError("MAX_PAGE_SIZE must be at least 1.")
        if self.bcrypt_cost < 10 and not self.debug:
            logger.warning("BCRYPT_COST=%d is below the recommended minimum of 10", self.bcrypt_cost)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

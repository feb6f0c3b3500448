"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AdminBoard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. cron_secret -> CRON_SECRET).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Secrets are required in production mode and auto-generated in
      dev mode so local runs and tests work without a .env file.

Security notes:
  SECRET_KEY signs session and invite JWTs. Shorter than 32 chars is rejected.
  CRON_SECRET guards the reset endpoint. Shorter than 16 chars is rejected.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
audit/, actions/ or maintenance/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("adminboard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'adminboard.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field has a default so Settings() can be built in tests. The
    validator enforces the production rules at startup.
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
    # "" means "not configured"; the validator fills or rejects it.
    secret_key: str = ""
    cron_secret: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 8 * 3600
    sign_in_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    # Seconds to wait for queued audit entries on shutdown before dropping them.
    audit_shutdown_timeout: float = 5.0
    # Records waiting for the worker. Beyond this add_log drops and returns False.
    audit_queue_size: int = 10_000

    # ------------------------------------------------------------------
    # Seed defaults
    # ------------------------------------------------------------------

    admin_email: str = "admin@admin.com"
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Fail fast when a required secret is missing.

        Dev mode (DEBUG=true): missing secrets are generated with a warning.
        Sessions and the cron secret will not survive a restart.

        Production mode: SECRET_KEY and CRON_SECRET must both be set.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.cron_secret:
            if not self.debug:
                raise ValueError("CRON_SECRET is required in production mode.")
            self.cron_secret = secrets.token_urlsafe(24)
            logger.warning("Using auto-generated CRON_SECRET. The reset endpoint is unreachable from outside.")
        if len(self.cron_secret) < 16:
            raise ValueError("CRON_SECRET must be at least 16 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

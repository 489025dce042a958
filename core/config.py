"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for X Reply Manager happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. twitter_client_id -> TWITTER_CLIENT_ID).

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev mode
      generates a key with a warning, production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Session token
       hashing, the OAuth state cookie and the credential encryption key
       derivation all rely on its entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, or replies/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("xreply.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'xreply.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Twitter credentials default to ""
    which means "not configured" -- the OAuth initiator refuses to run
    rather than redirecting to a broken authorization URL.
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # 30 days, the lifetime of the dashboard login.
    session_expire_seconds: int = 30 * 24 * 3600
    # Lifetime of a pending authorization request (state + PKCE verifier).
    oauth_state_ttl_seconds: int = 600

    # ------------------------------------------------------------------
    # Twitter / X OAuth 2.0
    # ------------------------------------------------------------------

    twitter_client_id: str = ""
    twitter_client_secret: str = ""
    # Optional override. When empty the callback URL is built from the
    # incoming request so it always matches the mounted route.
    twitter_redirect_uri: str = ""
    twitter_scopes: str = "tweet.read tweet.write users.read offline.access"
    twitter_http_timeout: float = 10.0

    # Fernet key (urlsafe base64, 32 bytes). Derived from SECRET_KEY when empty.
    credential_encryption_key: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    oauth_rate_limit: str = "20/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and stored credentials will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. "
                    "Sessions and encrypted credentials will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def twitter_configured(self) -> bool:
        return bool(self.twitter_client_id and self.twitter_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

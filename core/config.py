"""
core/config.py -- Environment-driven settings for the auth service.

Every environment read goes through Settings; nothing else in the tree calls
os.getenv(). get_settings() builds the object on first use and caches it, so
FastAPI routes, the CLI and the token layer all see one configuration.

Field names map to upper-case environment variables (secret_key ->
SECRET_KEY) and may also come from a .env file in the working directory.

Signing key lifecycle:
  Loaded once at process start. Never rotated at runtime. With DEBUG=true and
  no SECRET_KEY an ephemeral key is generated, which invalidates every issued
  token on restart. Without DEBUG a missing key refuses startup.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("pricetracker.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'pricetracker_auth.db'}"


class Settings(BaseSettings):
    """Auth service configuration.

    Every field except secret_key has a usable default; validate_token_settings
    decides what an empty secret_key means.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime mode and signing key
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; after validation it is always a real key.
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_issuer: str = "PriceTracker"
    jwt_audience: str = "PriceTrackerUsers"
    access_token_minutes: int = 60
    remember_me_minutes: int = 7 * 24 * 60

    # ------------------------------------------------------------------
    # Identity store
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Creates the demo account (admin / Admin123!) when the store is empty.
    seed_demo_identity: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_settings(self) -> "Settings":
        """Enforce SECRET_KEY, issuer and audience policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters, blank issuer or
            audience, and non-positive token lifetimes.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Issued tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.jwt_issuer.strip() or not self.jwt_audience.strip():
            raise ValueError("JWT_ISSUER and JWT_AUDIENCE must not be blank.")
        if self.access_token_minutes <= 0 or self.remember_me_minutes <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings. Tests that change the environment call
    get_settings.cache_clear() first.
    """
    return Settings()

"""
Configuration module for the Marketplace authentication service.

This module uses Pydantic Settings to load and validate environment variables
for the Keycloak identity broker, the persistence layer, cookie sessions,
and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for the identity broker (OIDC), cookie sessions,
    database access and security policies are defined here.
    """

    # =========================================================================
    # Application Origin
    # =========================================================================

    ORIGIN: str = Field(
        ...,
        description="Public origin of this service (e.g., https://marketplace.example.com)",
        min_length=1,
    )

    # =========================================================================
    # Keycloak Configuration (OIDC Identity Broker)
    # =========================================================================

    KEYCLOAK_URL: str = Field(
        ...,
        description="Keycloak base URL (e.g., https://sso.example.com)",
        min_length=1,
    )

    KEYCLOAK_REALM: str = Field(
        ...,
        description="Keycloak realm that federates the upstream identity providers",
        min_length=1,
    )

    KEYCLOAK_CLIENT_ID: str = Field(
        ...,
        description="Client ID registered in the Keycloak realm",
        min_length=1,
    )

    KEYCLOAK_CLIENT_SECRET: str = Field(
        ...,
        description="Client secret registered in the Keycloak realm",
        min_length=1,
    )

    TOKEN_EXCHANGE_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Upper bound for calls to the Keycloak token and logout endpoints",
        gt=0,
        le=60,
    )

    # =========================================================================
    # Persistence
    # =========================================================================

    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./marketplace.db",
        description="SQLAlchemy async database URL",
    )

    # =========================================================================
    # Cookie Session Configuration
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret key for signing the session cookie (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="sid",
        description="Name of the signed session cookie",
    )

    COOKIE_SECURE: bool = Field(
        default=False,
        description="Only send the session cookie over HTTPS",
    )

    # =========================================================================
    # CORS / Logging
    # =========================================================================

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def keycloak_realm_url(self) -> str:
        """Base URL of the realm's OpenID Connect endpoints."""
        return f"{self.KEYCLOAK_URL}/auth/realms/{self.KEYCLOAK_REALM}/protocol/openid-connect"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.keycloak_realm_url}/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self.keycloak_realm_url}/token"

    @property
    def logout_endpoint(self) -> str:
        return f"{self.keycloak_realm_url}/logout"

    @property
    def callback_url(self) -> str:
        """Callback URL without the optional redirectOnSuccess parameter."""
        return f"{self.ORIGIN}/auth/callback"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("ORIGIN", "KEYCLOAK_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """
        Normalise base URLs so paths can be appended with a single slash.

        Raises:
            ValueError: If the value is not an http(s) URL
        """
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Expected an http(s) URL, got: '{v}'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        v = v.upper()
        if v not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()

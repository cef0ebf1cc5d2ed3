"""Authorization settings using Pydantic Settings.

SECURITY: Production-like environments require XTMATE_AUTH_JWT_SECRET
(min 32 chars). Generate one with:
    python -c "import secrets; print(secrets.token_hex(32))"
"""

import logging
import secrets
import warnings
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PRODUCTION_ENVIRONMENTS = ("production", "prod", "staging")
MIN_SECRET_LENGTH = 32


class AuthSettings(BaseSettings):
    """
    Identity, session and vendor portal configuration.

    All settings can be overridden via environment variables with the
    XTMATE_AUTH_ prefix, e.g. XTMATE_AUTH_JWT_SECRET.
    """

    model_config = SettingsConfigDict(
        env_prefix="XTMATE_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", description="Environment name")

    # Session tokens
    jwt_secret: Optional[str] = Field(default=None, description="Session token signing key")
    jwt_algorithm: str = Field(default="HS256", description="Session token algorithm")
    jwt_audience: Optional[str] = Field(default=None, description="Expected 'aud' claim, if any")
    jwt_issuer: Optional[str] = Field(default=None, description="Expected 'iss' claim, if any")
    organization_claim: str = Field(
        default="org_id",
        description="Claim holding the organization selected in the session",
    )
    session_cookie_name: str = Field(default="__session", description="Session cookie name")

    # Vendor portal
    vendor_token_cookie_name: str = Field(default="vendor_token", description="Vendor portal cookie name")
    vendor_token_ttl_days: int = Field(default=30, ge=1, description="Vendor token lifetime in days")
    app_url: str = Field(default="https://xtmate-v3.vercel.app", description="Public application URL")

    @property
    def is_production(self) -> bool:
        """Check if running in a production-like environment."""
        return self.environment in PRODUCTION_ENVIRONMENTS

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "AuthSettings":
        if self.jwt_secret:
            if len(self.jwt_secret) < MIN_SECRET_LENGTH and self.is_production:
                raise ValueError(
                    f"XTMATE_AUTH_JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters in production"
                )
            return self

        if self.is_production:
            raise ValueError(
                "XTMATE_AUTH_JWT_SECRET is required in production. "
                "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        # Development fallback, unique per process start
        warnings.warn(
            "XTMATE_AUTH_JWT_SECRET not set - using generated development secret. "
            "Set XTMATE_AUTH_JWT_SECRET for production.",
            UserWarning,
        )
        self.jwt_secret = f"DEV-ONLY-{secrets.token_hex(32)}"
        return self


class DatabaseSettings(BaseSettings):
    """
    Database configuration settings.

    Supports PostgreSQL for production and SQLite for development.
    All settings can be overridden via environment variables with DB_ prefix.

    Example environment variables:
        DB_DRIVER=postgresql+asyncpg
        DB_HOST=localhost
        DB_NAME=xtmate
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(
        default="sqlite+aiosqlite",
        description="Database driver (postgresql+asyncpg or sqlite+aiosqlite)"
    )

    # PostgreSQL settings
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="xtmate", description="Database name")
    user: str = Field(default="", description="Database user")
    password: str = Field(default="", description="Database password")

    # SQLite settings (for development/testing)
    sqlite_path: Path = Field(
        default=Path("data/xtmate.db"),
        description="Path to SQLite database file"
    )

    pool_size: int = Field(default=10, ge=1, le=100, description="Connections kept in the pool")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max connections above pool_size")
    pool_pre_ping: bool = Field(default=True, description="Test connections before using them")

    echo_sql: bool = Field(default=False, description="Log all SQL statements (for debugging)")

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite."""
        return "sqlite" in self.driver.lower()

    @computed_field
    @property
    def async_url(self) -> str:
        """Database URL for async connections."""
        if self.is_sqlite:
            return f"sqlite+aiosqlite:///{self.sqlite_path.absolute()}"

        auth = ""
        if self.user:
            auth = f"{self.user}"
            if self.password:
                auth += f":{self.password}"
            auth += "@"

        return f"{self.driver}://{auth}{self.host}:{self.port}/{self.name}"


@lru_cache
def get_settings() -> AuthSettings:
    """Get cached authorization settings."""
    return AuthSettings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings()

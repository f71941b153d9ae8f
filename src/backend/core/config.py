"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

import json
from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "SealedBallot"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - shared with the auth service that issues tokens

    # Authentication (tokens are issued elsewhere, only validated here)
    JWT_ALGORITHM: str = "HS256"

    # Database - PostgreSQL
    DATABASE_URL: str | None = None  # Full override, e.g. sqlite+aiosqlite for tests
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "sealedballot"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "sealedballot"
    POSTGRES_POOL_SIZE: int = 20
    POSTGRES_MAX_OVERFLOW: int = 0
    DB_CREATE_TABLES: bool = False  # Create missing tables on startup (dev only)

    # Ballot encryption
    # Base64-encoded 256-bit AES key. Generate with:
    #   python -c "from core.encryption import generate_encryption_key; print(generate_encryption_key())"
    BALLOT_ENCRYPTION_KEY: str = ""

    # Receipts and retries
    RECEIPT_TOKEN_BYTES: int = 24  # 32 URL-safe characters
    RECEIPT_RETRY_LIMIT: int = 3
    CAST_RETRY_LIMIT: int = 3

    # Result visibility for polls that are not closed yet
    RESULTS_PRIVILEGED_ROLES: str = "poll_admin,vote_creator"
    ADMIN_ROLE: str = "poll_admin"

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("SECRET_KEY", "BALLOT_ENCRYPTION_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Database URL, preferring DATABASE_URL over the POSTGRES_* parts."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Hosting platforms hand out plain postgresql:// URLs
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return url
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def results_privileged_roles(self) -> frozenset[str]:
        """Roles allowed to see results before a poll is closed."""
        return frozenset(
            role.strip() for role in self.RESULTS_PRIVILEGED_ROLES.split(",") if role.strip()
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

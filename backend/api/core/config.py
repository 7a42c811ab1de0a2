"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub OAuth
    github_client_id: str = Field(default="", description="GitHub OAuth Client ID")
    github_client_secret: str = Field(default="", description="GitHub OAuth Client Secret")

    # GitLab OAuth (optional)
    gitlab_client_id: str = Field(default="", description="GitLab OAuth Client ID")
    gitlab_client_secret: str = Field(default="", description="GitLab OAuth Client Secret")
    gitlab_url: str = Field(default="https://gitlab.com", description="GitLab instance URL")

    oauth_timeout: float = Field(
        default=10.0, description="Timeout in seconds for provider and avatar requests"
    )
    avatar_max_bytes: int = Field(
        default=1024 * 1024, gt=0, description="Largest avatar image accepted at registration"
    )

    # Registration carrier signing
    jwt_secret_key: str = Field(..., description="Secret key for registration token signing")
    jwt_algorithm: str = Field(default="HS512", description="JWT signing algorithm")
    registration_expire_minutes: int = Field(
        default=60, description="Lifetime of the pending-registration cookie"
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: str = Field(default="prefer", description="asyncpg ssl mode")
    run_migrations: bool = Field(default=True, description="Apply pending migrations on startup")

    # Server URLs
    client_url: str = Field(default="http://localhost:5173", description="Client (frontend) URL")
    api_url: str = Field(default="http://localhost:5000", description="API server URL")
    https: bool = Field(default=False, description="Mark auth cookies as Secure")

    # Cookies
    access_cookie_name: str = Field(default="paste_token")
    registration_cookie_name: str = Field(default="paste_registration")
    session_cookie_name: str = Field(default="paste_session")

    # OAuth login sessions
    session_backend: Literal["memory", "postgres"] = Field(
        default="memory", description="Where pending OAuth state values are kept"
    )
    session_ttl_seconds: int = Field(default=600, description="Lifetime of a pending login")

    # Id generation
    id_max_attempts: int = Field(default=10, description="Id draws before giving up")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=5000, description="Server port")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("client_url", "api_url", "gitlab_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        return [self.client_url]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]

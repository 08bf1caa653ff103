"""Application configuration management using Pydantic Settings.

This module loads and validates environment variables using Pydantic Settings.
All configuration is loaded from environment variables or a .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy connection string (PostgreSQL in production)
        database_pool_size: Number of connections to maintain in pool
        database_max_overflow: Maximum overflow connections beyond pool_size
        environment: Application environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        jwt_secret: Secret used to sign access tokens
        jwt_algorithm: JWT signing algorithm
        jwt_expire_minutes: Access token lifetime in minutes
        auth_cookie_name: Cookie that may carry the access token
        allowed_origins: Comma-separated list of allowed CORS origins
        default_timezone_name: Timezone recorded when a client sends none
        default_timezone_offset: UTC offset recorded when a client sends none
        seed_file: Optional YAML file with users/questionnaires loaded at startup
        auto_create_tables: Create missing tables at startup
    """

    # Database Configuration
    database_url: str = Field(
        description="Database connection string"
    )
    database_pool_size: int = Field(
        default=5,
        description="Number of database connections in pool"
    )
    database_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool size"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Security Configuration
    jwt_secret: str = Field(
        description="Secret key used to sign access tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    jwt_expire_minutes: int = Field(
        default=1440,
        ge=1,
        description="Access token lifetime in minutes"
    )
    auth_cookie_name: str = Field(
        default="token",
        description="Name of the cookie carrying the access token"
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Questionnaire Configuration
    default_timezone_name: str = Field(
        default="America/New_York",
        description="Timezone stored on completions when the client sends none"
    )
    default_timezone_offset: str = Field(
        default="-05:00",
        description="UTC offset stored on completions when the client sends none"
    )
    seed_file: Optional[str] = Field(
        default=None,
        description="YAML seed file loaded at startup"
    )
    auto_create_tables: bool = Field(
        default=True,
        description="Create missing tables at startup"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("default_timezone_offset")
    @classmethod
    def validate_timezone_offset(cls, v: str) -> str:
        """Validate offset looks like +HH:MM or -HH:MM."""
        if len(v) != 6 or v[0] not in "+-" or v[3] != ":":
            raise ValueError("Timezone offset must look like -05:00")
        return v

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed_origins string into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Note:
        Uses lru_cache to ensure settings are only loaded once
        and shared across the application.
    """
    return Settings()

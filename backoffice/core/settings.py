# ==============================================================================
# SETTINGS CONFIGURATION - Environment Management
# ==============================================================================
# Pydantic Settings for process-level configuration
# Backoffice schemas themselves live in YAML (see backoffice.config.loader)
# ==============================================================================

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import List

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Application Settings Configuration.

    Manages all environment variables with type validation and defaults.
    Values are read from the process environment and an optional ``.env``
    file in the working directory.

    Attributes:
        CONFIG_PATH: Application YAML (bind address, security flag)
        BACKOFFICES_DIR: Directory scanned for backoffice schema files
        AUDIT_LOG_DIR: Directory receiving ``audit-YYYY-MM-DD.jsonl`` files
        HTTP_*: Timeout and retry policy shared by HTTP-based adapters

    Example:
        >>> from backoffice.core.settings import settings
        >>> settings.HTTP_MAX_RETRIES
        3
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # APPLICATION SETTINGS
    # --------------------------------------------------------------------------
    APP_NAME: str = Field(
        default="Backoffice Engine",
        description="Application display name"
    )
    APP_VERSION: str = Field(
        default="1.0.0",
        description="Application semantic version"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (logs, stack traces)"
    )
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current deployment environment"
    )

    # --------------------------------------------------------------------------
    # API CONFIGURATION
    # --------------------------------------------------------------------------
    API_PREFIX: str = Field(
        default="/api",
        description="Route prefix for backoffice endpoints"
    )
    API_TITLE: str = Field(
        default="Backoffice Engine API",
        description="OpenAPI documentation title"
    )
    API_DESCRIPTION: str = Field(
        default="Configuration-driven data access and integrity engine",
        description="OpenAPI documentation description"
    )

    # --------------------------------------------------------------------------
    # CONFIGURATION FILES
    # --------------------------------------------------------------------------
    CONFIG_PATH: str = Field(
        default="config/config.yaml",
        description="Application config file (server, security)"
    )
    BACKOFFICES_DIR: str = Field(
        default="config/backoffices",
        description="Directory holding backoffice schema YAML files"
    )

    # --------------------------------------------------------------------------
    # AUDIT TRAIL
    # --------------------------------------------------------------------------
    AUDIT_ENABLED: bool = Field(
        default=True,
        description="Write audit entries for successful mutations"
    )
    AUDIT_LOG_DIR: str = Field(
        default="logs/audit",
        description="Directory for daily JSONL audit files"
    )

    # --------------------------------------------------------------------------
    # HTTP ADAPTERS (REST, GraphQL, Supabase, Elasticsearch)
    # --------------------------------------------------------------------------
    HTTP_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds"
    )
    HTTP_MAX_RETRIES: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for a network call (first try included)"
    )
    HTTP_RETRY_BASE_DELAY: float = Field(
        default=0.5,
        ge=0,
        description="Base delay in seconds for exponential backoff"
    )
    HTTP_RETRY_MAX_DELAY: float = Field(
        default=10.0,
        ge=0,
        description="Upper bound for a single backoff delay"
    )
    HTTP_CHECK_ON_CONNECT: bool = Field(
        default=True,
        description="Check HTTP endpoints for reachability when connecting"
    )

    # --------------------------------------------------------------------------
    # CONNECTION POOL SETTINGS
    # --------------------------------------------------------------------------
    DB_POOL_SIZE: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Database connection pool size"
    )
    DB_MAX_OVERFLOW: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections beyond pool size"
    )
    DB_POOL_TIMEOUT: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Connection pool timeout in seconds"
    )
    DB_POOL_RECYCLE: int = Field(
        default=3600,
        ge=60,
        description="Connection recycle time in seconds"
    )

    # --------------------------------------------------------------------------
    # MESSAGING / SOCKETS
    # --------------------------------------------------------------------------
    KAFKA_POLL_TIMEOUT_MS: int = Field(
        default=1000,
        ge=1,
        description="How long a Kafka read waits for messages"
    )
    KAFKA_MAX_RECORDS: int = Field(
        default=500,
        ge=1,
        description="Maximum messages returned by a Kafka read"
    )
    WEBSOCKET_RECEIVE_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for a WebSocket reply"
    )

    # --------------------------------------------------------------------------
    # CORS SETTINGS
    # --------------------------------------------------------------------------
    CORS_ORIGINS: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(
        default=True,
        description="Allow credentials in CORS requests"
    )

    # --------------------------------------------------------------------------
    # LOGGING CONFIGURATION
    # --------------------------------------------------------------------------
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    LOG_FORMAT: str = Field(
        default="text",
        description="Log format (json, text)"
    )

    # --------------------------------------------------------------------------
    # VALIDATORS
    # --------------------------------------------------------------------------
    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in {"json", "text"}:
            raise ValueError(f"Invalid log format: {v}")
        return fmt

    # --------------------------------------------------------------------------
    # COMPUTED PROPERTIES
    # --------------------------------------------------------------------------
    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == Environment.PRODUCTION


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: Application settings singleton
    """
    return Settings()


# Global settings instance for convenient imports
settings = get_settings()

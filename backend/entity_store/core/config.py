"""
Entity Store Configuration

Configuration management with environment variable support.
Implements defaults and validation for retry, cache, batch and store settings.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=True, description="Render log lines as JSON")

    # Store batch limits (hard per-call item limits of the document store)
    STORE_READ_BATCH_LIMIT: int = Field(
        default=100, ge=1, le=100, description="Maximum keys per batch get call"
    )
    STORE_WRITE_BATCH_LIMIT: int = Field(
        default=25,
        ge=1,
        le=25,
        description="Maximum puts+deletes per batch write call",
    )

    # Retry configuration
    RETRY_MAX_RETRIES: int = Field(
        default=3, ge=0, le=10, description="Additional attempts after the first"
    )
    RETRY_BASE_DELAY_SECONDS: float = Field(
        default=0.1, gt=0.0, le=60.0, description="Delay before the first retry"
    )
    RETRY_MAX_DELAY_SECONDS: float = Field(
        default=5.0, gt=0.0, le=3600.0, description="Upper bound for any retry delay"
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0, gt=1.0, le=10.0, description="Exponential backoff multiplier"
    )
    RETRY_JITTER: bool = Field(default=False, description="Add jitter to delays")

    # In-process entity cache
    CACHE_ENABLED: bool = Field(default=True, description="Enable entity caching")
    CACHE_DEFAULT_TTL_SECONDS: float = Field(
        default=300.0, gt=0.0, description="Default entity cache TTL"
    )
    CACHE_MAX_ENTRIES: Optional[int] = Field(
        default=10000,
        ge=1,
        description="Maximum cached entities per repository (None = unbounded)",
    )

    # Redis-backed store
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    REDIS_KEY_PREFIX: str = Field(
        default="entity", min_length=1, description="Prefix for all item keys"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )

    # Table identity
    HERITAGE_SITES_TABLE: str = Field(default="heritage-sites")
    ARTIFACTS_TABLE: str = Field(default="artifacts")
    USER_SESSIONS_TABLE: str = Field(default="user-sessions")
    CONTENT_CACHE_TABLE: str = Field(default="content-cache")

    # Per-entity cache TTLs
    HERITAGE_SITES_CACHE_TTL_SECONDS: float = Field(default=600.0, gt=0.0)
    ARTIFACTS_CACHE_TTL_SECONDS: float = Field(default=300.0, gt=0.0)
    USER_SESSIONS_CACHE_TTL_SECONDS: float = Field(default=180.0, gt=0.0)
    CONTENT_CACHE_CACHE_TTL_SECONDS: float = Field(default=900.0, gt=0.0)

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @model_validator(mode="after")
    def validate_retry_bounds(self) -> "Settings":
        """Max retry delay must not be below the base delay."""
        if self.RETRY_MAX_DELAY_SECONDS < self.RETRY_BASE_DELAY_SECONDS:
            raise ValueError(
                "RETRY_MAX_DELAY_SECONDS must be >= RETRY_BASE_DELAY_SECONDS"
            )
        return self

    def default_retry_config(self):
        """Build the RetryConfig described by the RETRY_* settings."""
        from entity_store.repositories.retry import RetryConfig

        return RetryConfig(
            max_retries=self.RETRY_MAX_RETRIES,
            base_delay_seconds=self.RETRY_BASE_DELAY_SECONDS,
            max_delay_seconds=self.RETRY_MAX_DELAY_SECONDS,
            backoff_multiplier=self.RETRY_BACKOFF_MULTIPLIER,
            jitter=self.RETRY_JITTER,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()

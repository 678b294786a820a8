"""
Centralized Configuration for the SocialNet backend.

All process-level environment variables are managed here using Pydantic Settings.
Runtime-editable values (site name, feature flags, API keys set by an admin)
live in the database instead; see config_store.py.

Usage:
    from socialnet.config import settings

    db_url = settings.database_url
    ttl = settings.config_cache_ttl_seconds
"""

import os
from typing import Optional, Literal
from pydantic import Field, field_validator, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with SOCIALNET_ where applicable.
    See .env.example for all available options.
    """

    # =============================================================================
    # Application Environment
    # =============================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
        validation_alias="SOCIALNET_ENVIRONMENT"
    )

    testing: bool = Field(
        default=False,
        description="Enable testing mode",
        validation_alias="TESTING"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validation_alias="SOCIALNET_LOG_LEVEL"
    )

    allowed_origins: str = Field(
        default="*",
        description="CORS allowed origins (comma-separated or '*')",
        validation_alias="SOCIALNET_ALLOWED_ORIGINS"
    )

    # =============================================================================
    # Database
    # =============================================================================

    database_url: str = Field(
        default="sqlite:///./socialnet.db",
        description="Database connection URL (PostgreSQL or SQLite)",
        validation_alias="DATABASE_URL"
    )

    db_pool_size: int = Field(
        default=5,
        ge=1,
        description="Persistent PostgreSQL connections per process",
        validation_alias="DB_POOL_SIZE"
    )

    db_max_overflow: int = Field(
        default=10,
        ge=0,
        description="Extra PostgreSQL connections allowed when the pool is exhausted",
        validation_alias="DB_MAX_OVERFLOW"
    )

    db_pool_recycle_seconds: int = Field(
        default=3600,
        ge=1,
        description="Seconds before a pooled PostgreSQL connection is replaced",
        validation_alias="DB_POOL_RECYCLE_SECONDS"
    )

    # =============================================================================
    # Authentication & Security
    # =============================================================================

    secret_key: str = Field(
        ...,
        description="Secret key for JWT token signing (generate with: openssl rand -hex 32)",
        validation_alias="SOCIALNET_SECRET_KEY"
    )

    token_expire_minutes: int = Field(
        default=1440,
        description="JWT token expiration time in minutes",
        validation_alias="SOCIALNET_TOKEN_EXPIRE_MINUTES"
    )

    # =============================================================================
    # Redis & Background Jobs
    # =============================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
        validation_alias="REDIS_URL"
    )

    celery_broker_url: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to redis_url)",
        validation_alias="CELERY_BROKER_URL"
    )

    celery_result_backend: Optional[str] = Field(
        default=None,
        description="Celery result backend URL (defaults to redis_url)",
        validation_alias="CELERY_RESULT_BACKEND"
    )

    # =============================================================================
    # Dynamic Configuration Cache
    # =============================================================================

    config_cache_max_entries: int = Field(
        default=500,
        ge=1,
        description="Maximum entries held by the in-process configuration cache",
        validation_alias="CONFIG_CACHE_MAX_ENTRIES"
    )

    config_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds a configuration cache entry lives without being read",
        validation_alias="CONFIG_CACHE_TTL_SECONDS"
    )

    # =============================================================================
    # Recommendations
    # =============================================================================

    recommended_users_cache_ttl: int = Field(
        default=3600,
        description="Redis TTL for 'people you may know' results (seconds)",
        validation_alias="RECOMMENDED_USERS_CACHE_TTL"
    )

    recommended_posts_cache_ttl: int = Field(
        default=1800,
        description="Redis TTL for recommended posts (seconds)",
        validation_alias="RECOMMENDED_POSTS_CACHE_TTL"
    )

    # =============================================================================
    # Content Moderation
    # =============================================================================

    moderation_reject_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Flagged content scoring above this is rejected outright",
        validation_alias="MODERATION_REJECT_THRESHOLD"
    )

    # =============================================================================
    # Computed Properties
    # =============================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.testing

    @property
    def effective_celery_broker_url(self) -> str:
        """Get Celery broker URL (falls back to redis_url)."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str:
        """Get Celery result backend URL (falls back to redis_url)."""
        return self.celery_result_backend or self.redis_url

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =============================================================================
    # Field Validators
    # =============================================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Convert postgres:// to postgresql:// for SQLAlchemy compatibility."""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is uppercase and valid."""
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        return v.lower() if isinstance(v, str) else v


# =============================================================================
# Global Settings Instance
# =============================================================================

try:
    settings = Settings()
except Exception as e:
    if os.getenv("TESTING") == "true":
        os.environ.setdefault("SOCIALNET_SECRET_KEY", "test-secret-key-for-testing-only")
        settings = Settings()
    else:
        raise RuntimeError(
            f"Failed to load application settings: {e}\n\n"
            "Required environment variables:\n"
            "- SOCIALNET_SECRET_KEY (generate with: openssl rand -hex 32)\n\n"
            "See .env.example for all available configuration options."
        ) from e


def get_settings() -> Settings:
    """
    Get settings instance (for dependency injection).

    Usage:
        @app.get("/endpoint")
        def endpoint(settings: Settings = Depends(get_settings)):
            ...
    """
    return settings


__all__ = ["settings", "get_settings", "Settings"]

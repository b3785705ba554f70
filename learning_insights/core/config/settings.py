# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the learning
insights pipeline. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from learning_insights.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.recompute.debounce_seconds)
    5.0
"""

from functools import lru_cache
from typing import Literal, Self
from urllib.parse import urlparse

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL configuration for the activity and insights stores.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Log every SQL statement.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "insights"
    password: SecretStr = SecretStr("insights_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "learning_insights"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for the job registry, broker and rate limiter.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password (empty for no auth).
        database: Redis database number.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        if pwd:
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"
        return f"redis://{self.host}:{self.port}/{self.database}"


class RecomputeSettings(BaseSettings):
    """Insight recompute queue configuration.

    Attributes:
        debounce_seconds: Delay applied to scheduled recomputes so bursts
            of activity for one user collapse into a single job.
        concurrency: Number of concurrent recompute workers.
        max_attempts: Total attempts before a job is left failed.
        backoff_seconds: Base delay of the exponential retry backoff.
        stale_after_days: Insights older than this are refreshed by the
            periodic stale sweep.
        stale_sweep_minutes: Interval of the stale sweep.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECOMPUTE_",
        extra="ignore",
    )

    debounce_seconds: float = Field(default=5.0, ge=0)
    concurrency: int = Field(default=5, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0)
    stale_after_days: int = Field(default=7, ge=1)
    stale_sweep_minutes: int = Field(default=60, ge=1)


class AdviceSettings(BaseSettings):
    """AI advice sub-queue configuration.

    Attributes:
        min_interval_seconds: Minimum time between automatic advice
            requests for one user.
        max_age_hours: Existing advice older than this is regenerated.
        min_data_points: Data points a user needs before automatic advice.
        concurrency: Number of concurrent advice workers.
        max_attempts: Total attempts before a job is left failed.
        backoff_seconds: Base delay of the exponential retry backoff.
    """

    model_config = SettingsConfigDict(
        env_prefix="ADVICE_",
        extra="ignore",
    )

    min_interval_seconds: float = Field(default=3600.0, ge=0)
    max_age_hours: int = Field(default=24, ge=1)
    min_data_points: int = Field(default=10, ge=0)
    concurrency: int = Field(default=2, ge=1)
    max_attempts: int = Field(default=2, ge=1)
    backoff_seconds: float = Field(default=5.0, ge=0)


class AIServiceSettings(BaseSettings):
    """External AI advice service configuration.

    Attributes:
        base_url: Base URL of the AI service.
        advice_path: Path of the learning advice endpoint.
        timeout: Hard timeout of one advice request in seconds.
        api_key: Optional bearer token.
    """

    model_config = SettingsConfigDict(
        env_prefix="AI_SERVICE_",
        extra="ignore",
    )

    base_url: str = "http://localhost:8000"
    advice_path: str = "/api/learning-advice"
    timeout: float = Field(default=30.0, gt=0)
    api_key: SecretStr | None = None

    @property
    def advice_url(self) -> str:
        """Full URL of the learning advice endpoint."""
        return f"{self.base_url.rstrip('/')}{self.advice_path}"


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        queue_backend: "memory" runs the queues inside the current event
            loop; "dramatiq" sends jobs to Dramatiq workers over Redis.
        storage_backend: "memory" keeps records in process; "postgres"
            persists them with SQLAlchemy.
        processes: Number of Dramatiq worker processes.
        threads: Number of threads per Dramatiq worker process.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    queue_backend: Literal["memory", "dramatiq"] = "memory"
    storage_backend: Literal["memory", "postgres"] = "memory"
    processes: int = 2
    threads: int = 4


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind the API server.
        port: Port to bind the API server.
        prefix: URL prefix of the versioned API.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8080
    prefix: str = "/api/v1"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        timezone: IANA timezone used for calendar-day arithmetic.
        database: PostgreSQL settings.
        redis: Redis settings.
        recompute: Recompute queue settings.
        advice: Advice sub-queue settings.
        ai_service: External AI service settings.
        worker: Background worker settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    timezone: str = "UTC"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    recompute: RecomputeSettings = Field(default_factory=RecomputeSettings)
    advice: AdviceSettings = Field(default_factory=AdviceSettings)
    ai_service: AIServiceSettings = Field(default_factory=AIServiceSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with development defaults.
        """
        if self.environment == "production":
            host = urlparse(self.ai_service.base_url).hostname or ""
            if host in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    "AI service URL must not point at localhost in production. "
                    "Set AI_SERVICE_BASE_URL environment variable."
                )
            if self.worker.queue_backend == "memory":
                raise ValueError(
                    "In-process queues cannot share rate-limit state across workers. "
                    "Set WORKER_QUEUE_BACKEND=dramatiq in production."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()

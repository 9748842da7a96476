"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend
    queue_backend: Literal["memory", "redis"] = "memory"
    queue_name: str = "jobqueue"
    redis_url: str = "redis://localhost:6379/0"

    # Worker Configuration
    worker_concurrency: int = 4
    worker_batch_size: int = 10
    worker_poll_interval_seconds: float = 1.0
    job_timeout_seconds: float | None = 60.0
    worker_backend_retry_attempts: int = 5
    worker_backend_retry_delay_seconds: float = 0.5

    # Retry Policy
    retry_base_delay_seconds: float = 5.0
    retry_max_delay_seconds: float = 300.0
    dead_letter_enabled: bool = True

    # Job Defaults
    default_max_retries: int = 3
    default_priority: int = 5

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "jobqueue"
    metrics_enabled: bool = True
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

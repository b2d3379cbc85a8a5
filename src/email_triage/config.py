"""Configuration management for the email triage pipeline.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the EMAIL_TRIAGE_ prefix (e.g., EMAIL_TRIAGE_OLLAMA_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Language model service (Ollama)
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Model used for classification and reply generation",
    )
    llm_enabled: bool = Field(
        default=True,
        description="Use the language model service; when disabled only deterministic paths run",
    )
    classification_timeout: float = Field(
        default=15.0,
        description="Upper bound in seconds for one classification call",
    )
    generation_timeout: float = Field(
        default=30.0,
        description="Upper bound in seconds for one reply generation call",
    )
    classification_max_body_chars: int = Field(
        default=2000,
        description="Email body is truncated to this many characters before classification",
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///email_triage.sqlite3",
        description="SQLAlchemy database URL for queue, rules, audit log and tenant data",
    )

    # Queue
    queue_batch_size: int = Field(
        default=10,
        description="Maximum number of queue items returned by one batch",
    )
    queue_max_retries: int = Field(
        default=3,
        description="Retries before a failed queue item becomes permanently failed",
    )
    queue_retry_base_minutes: float = Field(
        default=1.0,
        description="Retry back-off unit; retry n is scheduled 2^n units later",
    )
    queue_cleanup_days: int = Field(
        default=30,
        description="Finished queue items older than this are removed by cleanup",
    )

    # Worker
    worker_concurrency: int = Field(
        default=4,
        description="Maximum queue items processed concurrently by one worker",
    )
    worker_poll_interval: float = Field(
        default=5.0,
        description="Seconds between queue polls when running continuously",
    )

    # Reply generation
    default_style_confidence: int = Field(
        default=85,
        description="Confidence reported for styled replies when the profile has none",
    )
    fallback_confidence: int = Field(
        default=50,
        description="Confidence reported for template fallback replies",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for failed language model calls",
    )
    cache_enabled: bool = Field(
        default=True,
        description="Enable per-tenant caching of rules and templates",
    )
    cache_ttl: int = Field(
        default=300,
        description="Cache time-to-live in seconds",
    )
    cache_max_size: int = Field(
        default=256,
        description="Maximum number of tenants held in each cache",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()

"""Configuration management for the quiz question service."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration
    database_url: str = "sqlite:///./wikiquiz.db"

    # Application Settings
    env: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # LLM API Keys
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None

    # Provider Settings
    openai_model: str = "gpt-4o-mini"
    google_model: str = "gemini-2.0-flash-lite"
    openai_temperature: float = 0.6
    google_temperature: float = 0.7
    max_output_tokens: int = 300
    batch_max_output_tokens: int = 1500
    provider_timeout_seconds: float = 20.0
    # "sequential-fallback" or "parallel-prefer-first"
    generation_policy: str = "sequential-fallback"

    # Validation Settings
    title_overlap_ratio: float = 0.5
    numeric_absolute_gap: float = 10.0
    numeric_relative_gap: float = 0.10

    # Cache Settings
    lookup_limit: int = 12
    sufficiency_threshold: int = 8
    target_pool_size: int = 12
    max_attempts_per_round: int = 1
    concurrent_rounds: bool = False
    min_len_for_slicing: int = 3500
    store_timeout_seconds: float = 10.0

    # Hints Settings
    batch_size: int = 10

    # Error Tracking
    sentry_dsn: Optional[str] = None
    sentry_traces_sample_rate: float = 0.1


# Global settings instance
settings = Settings()

"""
Configuration management for SoulScribe

Loads environment variables and provides application settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = "SoulScribe"
    log_level: str = "INFO"

    # OpenAI (or any OpenAI-compatible endpoint)
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None

    # =========================================================================
    # Agent Model Configuration
    # =========================================================================
    # Per-agent models live in soulscribe/config/models.yaml and are resolved
    # by LLMRouter (soulscribe/services/llm_router.py).
    #
    # A/B Testing via environment variables:
    #   TEST_WRITER_MODEL=gpt-4.1 python scripts/generate_chapters.py ...
    #   TEST_REVIEWERS_MODEL=gpt-4o-mini python scripts/generate_chapters.py ...
    # =========================================================================
    llm_request_timeout_seconds: float = 120.0

    # =========================================================================
    # Chapter Scheduler
    # =========================================================================
    scheduler_max_concurrency: int = 3
    scheduler_quality_threshold: float = 0.7
    scheduler_max_retries: int = 2
    scheduler_retry_backoff_seconds: float = 1.0
    scheduler_attempt_timeout_seconds: Optional[float] = 300.0
    scheduler_default_job_estimate_seconds: float = 120.0
    scheduler_accept_low_quality: bool = True
    scheduler_abandon_dependents: bool = False

    # Debug Configuration
    debug_agent_io: bool = False  # Log agent inputs/outputs
    debug_storage: bool = False   # Log chapter store operations
    debug_api_calls: bool = False  # Log LLM API call details
    debug_log_dir: str = "logs/debug"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once.
    """
    return Settings()

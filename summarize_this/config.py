import os
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings leveraging environment overrides.
    """

    model_config = SettingsConfigDict(
        env_prefix="SUMMARIZE_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    app_name: str = "Summarize This"
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "info"
    max_body_bytes: int = Field(512 * 1024, ge=1024)

    # Request bounds
    min_text_length: int = Field(10, ge=1)
    max_text_length: int = Field(100_000, ge=10)

    # Cache
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = Field(3600, ge=1)
    cache_key_prefix: str = "summary"

    # Credits
    credit_costs: Dict[str, int] = Field(
        default_factory=lambda: {
            "extractive": 1,
            "ranked": 3,
            "generative": 10,
            "composite": 6,
        }
    )
    reservation_ttl_seconds: int = Field(3600, ge=1)

    # Dispatch
    sync_threshold_bytes: int = Field(4096, ge=0)
    sync_slots: int = Field(4, ge=1)
    sync_deadline_seconds: float = Field(60.0, gt=0)
    generative_provider: str = "default"
    generative_retries: int = Field(1, ge=0)
    generative_backoff_initial: float = Field(0.25, ge=0)
    generative_backoff_max: float = Field(1.0, ge=0)

    # Jobs
    worker_count: Optional[int] = Field(None, ge=1)
    queue_max_size: int = Field(1000, ge=1)
    job_max_attempts: int = Field(3, ge=1)
    job_backoff_initial: float = Field(2.0, ge=0)
    job_backoff_factor: float = Field(2.0, ge=1)
    job_timeout_seconds: float = Field(300.0, gt=0)
    sweep_interval_seconds: float = Field(30.0, gt=0)
    record_retention_seconds: float = Field(3600.0, gt=0)

    # Provider pool defaults
    providers_file: Optional[str] = None
    provider_max_concurrency: int = Field(8, ge=1)
    provider_rate_capacity: int = Field(10, ge=1)
    provider_rate_refill: float = Field(5.0, gt=0)
    provider_timeout_seconds: float = Field(30.0, gt=0)
    breaker_failure_threshold: int = Field(5, ge=1)
    breaker_window_seconds: float = Field(30.0, gt=0)
    breaker_reset_seconds: float = Field(30.0, gt=0)

    # LLM settings
    llm_provider: str = Field(
        "none", description="LLM provider: none, openai, anthropic, ollama"
    )
    llm_model: Optional[str] = Field(None, description="Model name for LLM provider")
    openai_api_key: Optional[str] = Field(None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(None, validation_alias="ANTHROPIC_API_KEY")
    ollama_base_url: str = "http://localhost:11434"
    llm_temperature: float = Field(0.3, ge=0.0, le=2.0)

    event_buffer_size: int = Field(256, ge=1)

    def resolved_worker_count(self) -> int:
        if self.worker_count:
            return self.worker_count
        return max(2, os.cpu_count() or 2)


@lru_cache
def get_settings() -> Settings:
    return Settings()

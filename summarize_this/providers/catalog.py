"""Provider catalog loading and provider pool construction."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from summarize_this.config import Settings
from summarize_this.providers.base import ProviderClient
from summarize_this.providers.pool import ProviderPool, UsageSink

logger = logging.getLogger(__name__)

ProviderKind = Literal["openai", "anthropic", "ollama"]

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
    "ollama": "llama3.2",
}


class ProviderProfile(BaseModel):
    """One provider slot declared in the catalog."""

    name: str = Field(..., description="Slot name strategies refer to")
    kind: ProviderKind = Field(..., description="Client adapter to use")
    model: Optional[str] = Field(default=None, description="Vendor model name")
    base_url: Optional[str] = Field(default=None)
    api_key_env: Optional[str] = Field(
        default=None, description="Environment variable holding the API key"
    )
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    rate_capacity: Optional[int] = Field(default=None, ge=1)
    rate_refill: Optional[float] = Field(default=None, gt=0)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    failure_threshold: Optional[int] = Field(default=None, ge=1)
    window_seconds: Optional[float] = Field(default=None, gt=0)
    reset_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(r"^[a-z0-9][a-z0-9_-]*$", v):
            raise ValueError(f"Invalid provider name: {v}")
        return v


class ProviderCatalog(BaseModel):
    providers: List[ProviderProfile] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> "ProviderCatalog":
        names = [profile.name for profile in self.providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider names: {', '.join(duplicates)}")
        return self


def load_catalog(path: str | Path) -> ProviderCatalog:
    """
    Load a provider catalog from a YAML file.

    Args:
        path: Path to the catalog file

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is not valid YAML
        ValidationError: If a provider entry fails validation
    """
    catalog_path = Path(path)
    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"YAML parse error in {catalog_path}: {e}")
        raise

    if not data:
        logger.warning(f"Empty provider catalog: {catalog_path}")
        return ProviderCatalog()

    try:
        catalog = ProviderCatalog.model_validate(data)
    except ValidationError as e:
        logger.error(f"Validation error in {catalog_path}: {e}")
        raise

    logger.info(
        f"Provider catalog loaded: {', '.join(p.name for p in catalog.providers) or 'none'}"
    )
    return catalog


def catalog_from_settings(settings: Settings) -> ProviderCatalog:
    """Single-provider catalog described by the ``llm_*`` settings."""
    if settings.llm_provider == "none":
        return ProviderCatalog()
    if settings.llm_provider not in DEFAULT_MODELS:
        logger.warning(f"Unknown LLM provider: {settings.llm_provider}")
        return ProviderCatalog()
    return ProviderCatalog(
        providers=[
            ProviderProfile(
                name=settings.generative_provider,
                kind=settings.llm_provider,
                model=settings.llm_model,
            )
        ]
    )


def build_client(profile: ProviderProfile, settings: Settings) -> Optional[ProviderClient]:
    """Instantiate the adapter for ``profile``; None when it cannot be configured."""
    from summarize_this.providers.clients import (
        AnthropicProvider,
        OllamaProvider,
        OpenAIProvider,
    )

    model = profile.model or DEFAULT_MODELS[profile.kind]
    temperature = (
        profile.temperature if profile.temperature is not None else settings.llm_temperature
    )
    env_key = os.environ.get(profile.api_key_env) if profile.api_key_env else None

    try:
        if profile.kind == "openai":
            api_key = env_key or settings.openai_api_key
            if not api_key:
                logger.warning(
                    f"OpenAI API key not configured, skipping provider {profile.name}"
                )
                return None
            return OpenAIProvider(
                api_key=api_key,
                model=model,
                base_url=profile.base_url,
                temperature=temperature,
            )

        if profile.kind == "anthropic":
            api_key = env_key or settings.anthropic_api_key
            if not api_key:
                logger.warning(
                    f"Anthropic API key not configured, skipping provider {profile.name}"
                )
                return None
            return AnthropicProvider(api_key=api_key, model=model, temperature=temperature)

        return OllamaProvider(
            model=model,
            base_url=profile.base_url or settings.ollama_base_url,
            temperature=temperature,
        )
    except ImportError as e:
        logger.error(f"Failed to initialize provider {profile.name}: {e}")
        return None


def build_provider_pool(
    settings: Settings,
    sink: Optional[UsageSink] = None,
    catalog: Optional[ProviderCatalog] = None,
) -> ProviderPool:
    """Create a pool holding every provider the catalog (or settings) declares."""
    if catalog is None:
        if settings.providers_file:
            catalog = load_catalog(settings.providers_file)
        else:
            catalog = catalog_from_settings(settings)

    pool = ProviderPool(sink=sink)
    for profile in catalog.providers:
        client = build_client(profile, settings)
        if client is None:
            continue
        register_profile(pool, profile, client, settings)

    if settings.generative_provider not in pool:
        logger.info(
            f"No provider registered as '{settings.generative_provider}'; "
            "generative and composite requests will report provider errors"
        )
    return pool


def register_profile(
    pool: ProviderPool,
    profile: ProviderProfile,
    client: ProviderClient,
    settings: Settings,
) -> None:
    """Register ``client`` under ``profile.name`` with settings-backed limits."""

    def pick(value, default):
        return default if value is None else value

    pool.register(
        profile.name,
        client,
        max_concurrency=pick(profile.max_concurrency, settings.provider_max_concurrency),
        rate_capacity=pick(profile.rate_capacity, settings.provider_rate_capacity),
        rate_refill=pick(profile.rate_refill, settings.provider_rate_refill),
        timeout_seconds=pick(profile.timeout_seconds, settings.provider_timeout_seconds),
        failure_threshold=pick(
            profile.failure_threshold, settings.breaker_failure_threshold
        ),
        window_seconds=pick(profile.window_seconds, settings.breaker_window_seconds),
        reset_seconds=pick(profile.reset_seconds, settings.breaker_reset_seconds),
    )

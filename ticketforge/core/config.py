"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"


class TemplateSettings(BaseSettings):
    """Template document lookup settings."""

    model_config = SettingsConfigDict(env_prefix="TEMPLATES_")

    directory: str = Field(
        default=str(RESOURCES_DIR / "templates"),
        description="Root directory of the platforms/ and tech-stacks/ template tree",
    )
    base_document: str = Field(
        default="base.yml", description="Document merged under templates that declare inherits_from"
    )


class PromptSettings(BaseSettings):
    """Reasoning prompt definition settings."""

    model_config = SettingsConfigDict(env_prefix="PROMPTS_")

    directory: str = Field(
        default=str(RESOURCES_DIR / "prompts"),
        description="Directory containing prompt definition files",
    )
    default_prompt_id: str = Field(
        default="comprehensive-visual-analysis",
        description="Prompt compiled for the AI generation path",
    )


class CacheSettings(BaseSettings):
    """Generated-ticket cache settings."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: str = Field(default="memory", description="Cache backend (memory/redis/none)")
    ttl_seconds: int = Field(default=7200, description="Cached ticket TTL in seconds (2 hours)")
    key_prefix: str = Field(default="", description="Extra prefix applied by the Redis store")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {"memory", "redis", "none"}
        if v.lower() not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v.lower()


class RedisSettings(BaseSettings):
    """Redis configuration settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")


class ReasoningSettings(BaseSettings):
    """External reasoning engine configuration."""

    model_config = SettingsConfigDict(env_prefix="REASONING_")

    enabled: bool = Field(default=False, description="Enable the AI reasoning path")
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    api_key: str = Field(default="", description="Bearer token for the reasoning API")
    model: str = Field(default="gpt-4o-mini", description="Model used for analysis")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    max_tokens: int = Field(default=2048, description="Max tokens per response")
    timeout: int = Field(default=60, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Max attempts per reasoning call")


class GenerationSettings(BaseSettings):
    """Ticket generation defaults."""

    model_config = SettingsConfigDict(env_prefix="GENERATION_")

    default_platform: str = Field(default="jira", description="Platform used when none is given")
    default_document_type: str = Field(default="component", description="Default document type")
    coalesce_requests: bool = Field(
        default=False, description="Share one in-flight generation between identical requests"
    )
    reasoning_timeout: Optional[float] = Field(
        default=None, description="Seconds to wait for the reasoning engine before falling back"
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="ticketforge", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Sub-settings
    templates: TemplateSettings = Field(default_factory=TemplateSettings)
    prompts: PromptSettings = Field(default_factory=PromptSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    reasoning: ReasoningSettings = Field(default_factory=ReasoningSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def reasoning_configured(self) -> bool:
        """True when the AI path has an engine it can call."""
        return self.reasoning.enabled and bool(self.reasoning.api_key)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


settings = get_settings()

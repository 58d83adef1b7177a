"""Marketing chatbot — application configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "wa-marketing-bot"
    app_env: Environment = Environment.DEVELOPMENT
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 3000
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # ── LLM backends ─────────────────────────────────────────
    ollama_api_key: str = ""
    ollama_cloud_host: str = "https://ollama.com"
    ollama_model: str = "gpt-oss:120b"
    ollama_temperature: float = 0.55
    ollama_max_tokens: int = 250
    ollama_timeout_seconds: float = 60.0

    groq_api_key: str = ""
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "openai/gpt-oss-20b"
    groq_temperature: float = 0.55
    groq_max_tokens: int = 280
    groq_timeout_seconds: float = 15.0

    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.6
    gemini_max_tokens: int = 300
    gemini_timeout_seconds: float = 60.0

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    # Comma-separated; one pool entry per model, in order
    openrouter_models: str = (
        "deepseek/deepseek-r1:free,nvidia/llama-3.1-nemotron-70b-instruct:free"
    )
    openrouter_temperature: float = 0.6
    openrouter_max_tokens: int = 300
    openrouter_timeout_seconds: float = 25.0

    # ── Model rotation ───────────────────────────────────────
    llm_provider_priority: str = "ollama-cloud,groq,gemini,openrouter"
    llm_cooldown_seconds: float = 60.0
    llm_max_attempts: int = 5

    # ── WhatsApp connector ───────────────────────────────────
    wa_service_url: str = "http://localhost:3001"
    wa_service_timeout_seconds: float = 10.0

    # ── Conversation ─────────────────────────────────────────
    fallback_reply: str = "Maaf Kak, lagi ada gangguan. Coba lagi ya sebentar."
    chat_history_limit: int = 10
    reply_max_chars: int = 500
    timezone: str = "Asia/Jakarta"

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @property
    def provider_priority(self) -> list[str]:
        return [p.strip().lower() for p in self.llm_provider_priority.split(",") if p.strip()]

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("llm_cooldown_seconds")
    @classmethod
    def _positive_cooldown(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("llm_cooldown_seconds must be positive")
        return v

    @field_validator("llm_max_attempts", "chat_history_limit")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def _warn_without_providers(self) -> Settings:
        """Production without any model key can only ever send the fallback reply."""
        if self.app_env == Environment.PRODUCTION and not any(
            (self.ollama_api_key, self.groq_api_key, self.gemini_api_key, self.openrouter_api_key)
        ):
            import warnings

            warnings.warn(
                "No LLM API key configured in production; every reply will be the fallback",
                UserWarning,
                stacklevel=2,
            )
        return self


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)

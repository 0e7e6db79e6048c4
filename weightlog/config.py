"""AI provider settings: an explicit object passed into the import pipeline, built from env when needed."""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

AiProviderId = Literal["openai", "ollama"]

# provider -> model ids offered for selection (first one is the default)
AI_PROVIDER_MODELS: dict[str, list[str]] = {
    "openai": ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini", "gpt-4.1"],
    "ollama": ["llama3.2", "llama3.1", "phi3.5", "qwen2.5"],
}
DEFAULT_PROVIDER: AiProviderId = "openai"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_SANDBOX_TIMEOUT = 10.0  # seconds, wall clock


def default_model_id(provider_id: str) -> str:
    models = AI_PROVIDER_MODELS.get(provider_id)
    if not models:
        return DEFAULT_MODEL
    return models[0]


def ensure_model_for_provider(provider_id: str, model_id: str | None) -> str:
    """Keep model_id when the provider offers it; otherwise the provider's default."""
    if model_id and model_id.strip():
        if model_id.strip() in AI_PROVIDER_MODELS.get(provider_id, []):
            return model_id.strip()
    return default_model_id(provider_id)


class AISettings(BaseModel):
    provider: AiProviderId = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    request_timeout: float = 60.0
    sandbox_timeout: float = Field(default=DEFAULT_SANDBOX_TIMEOUT, gt=0)

    @classmethod
    def from_env(cls) -> "AISettings":
        """
        WEIGHTLOG_AI_PROVIDER (openai|ollama), WEIGHTLOG_AI_MODEL, WEIGHTLOG_OPENAI_API_KEY,
        WEIGHTLOG_OPENAI_BASE_URL, WEIGHTLOG_OLLAMA_BASE_URL, WEIGHTLOG_SANDBOX_TIMEOUT.
        Unknown provider falls back to openai; unknown model to the provider's default.
        """
        provider = os.environ.get("WEIGHTLOG_AI_PROVIDER", "").strip().lower() or DEFAULT_PROVIDER
        if provider not in AI_PROVIDER_MODELS:
            provider = DEFAULT_PROVIDER
        model = ensure_model_for_provider(provider, os.environ.get("WEIGHTLOG_AI_MODEL"))
        timeout_raw = os.environ.get("WEIGHTLOG_SANDBOX_TIMEOUT", "").strip()
        try:
            sandbox_timeout = float(timeout_raw) if timeout_raw else DEFAULT_SANDBOX_TIMEOUT
        except ValueError:
            sandbox_timeout = DEFAULT_SANDBOX_TIMEOUT
        return cls(
            provider=provider,
            model=model,
            openai_api_key=os.environ.get("WEIGHTLOG_OPENAI_API_KEY", "").strip() or None,
            openai_base_url=os.environ.get("WEIGHTLOG_OPENAI_BASE_URL", "").strip() or None,
            ollama_base_url=os.environ.get("WEIGHTLOG_OLLAMA_BASE_URL", "").strip() or DEFAULT_OLLAMA_BASE_URL,
            sandbox_timeout=sandbox_timeout if sandbox_timeout > 0 else DEFAULT_SANDBOX_TIMEOUT,
        )

    def is_ready(self) -> bool:
        """Ollama runs locally without a key; OpenAI needs one."""
        if self.provider == "ollama":
            return True
        return bool(self.openai_api_key)

"""Configuration helpers for the program advisor backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Mapping

from dotenv import load_dotenv

ENV_PREFIX = "PROGRAM_ADVISOR_"

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "groq": "qwen/qwen3-32b",
}

DEFAULT_BASE_URLS = {
    "openai": None,
    "groq": "https://api.groq.com/openai/v1",
}

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

load_dotenv(override=False)


@dataclass(frozen=True)
class LLMSettings:
    """Settings container for the text-generation provider.

    OpenAI is considered the primary provider; if its key is missing the
    configuration falls back to Groq, which exposes an OpenAI-compatible API.
    """

    openai_api_key: str | None = None
    groq_api_key: str | None = None
    model_override: str | None = None
    base_url_override: str | None = None
    timeout_seconds: float = 30.0

    @property
    def primary_provider(self) -> str | None:
        """Return the preferred provider based on available credentials."""

        if self.openai_api_key:
            return "openai"
        if self.groq_api_key:
            return "groq"
        return None

    def get_api_key(self, provider: str | None = None) -> str | None:
        """Return the API key for the requested provider.

        When *provider* is omitted the primary provider's key is returned.
        """

        resolved_provider = provider or self.primary_provider
        if resolved_provider == "openai":
            return self.openai_api_key
        if resolved_provider == "groq":
            return self.groq_api_key
        return None

    @property
    def model(self) -> str:
        if self.model_override:
            return self.model_override
        return DEFAULT_MODELS.get(self.primary_provider or "openai", DEFAULT_MODELS["openai"])

    @property
    def base_url(self) -> str | None:
        if self.base_url_override:
            return self.base_url_override
        return DEFAULT_BASE_URLS.get(self.primary_provider or "openai")

    @property
    def has_any_keys(self) -> bool:
        """True when at least one provider API key is configured."""

        return self.primary_provider is not None


@dataclass(frozen=True)
class AdvisorSettings:
    """Planning defaults and process-level knobs."""

    timeline_weeks: int = 12
    max_services: int = 5
    rate_limit: int = 8
    rate_window_seconds: float = 1.0
    log_level: str = "INFO"
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))


def _read_int(environ: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= minimum else default


def _read_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _read_origins(environ: Mapping[str, str]) -> List[str]:
    """Return allowed origins, optionally sourced from an env override."""

    raw = environ.get(f"{ENV_PREFIX}ALLOWED_ORIGINS")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return list(DEFAULT_ALLOWED_ORIGINS)


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """Read environment variables and return cached LLM settings."""

    environ = os.environ
    return LLMSettings(
        openai_api_key=environ.get("OPENAI_API_KEY") or None,
        groq_api_key=environ.get("GROQ_API_KEY") or None,
        model_override=environ.get(f"{ENV_PREFIX}LLM_MODEL") or None,
        base_url_override=environ.get(f"{ENV_PREFIX}LLM_BASE_URL") or None,
        timeout_seconds=_read_float(environ, f"{ENV_PREFIX}LLM_TIMEOUT", 30.0),
    )


@lru_cache(maxsize=1)
def get_advisor_settings() -> AdvisorSettings:
    """Read environment variables and return cached planning settings."""

    environ = os.environ
    return AdvisorSettings(
        timeline_weeks=_read_int(environ, f"{ENV_PREFIX}TIMELINE_WEEKS", 12, minimum=1),
        max_services=_read_int(environ, f"{ENV_PREFIX}MAX_SERVICES", 5),
        rate_limit=_read_int(environ, f"{ENV_PREFIX}RATE_LIMIT", 8, minimum=1),
        rate_window_seconds=_read_float(environ, f"{ENV_PREFIX}RATE_WINDOW_SECONDS", 1.0),
        log_level=(environ.get(f"{ENV_PREFIX}LOG_LEVEL") or "INFO").strip().upper(),
        allowed_origins=_read_origins(environ),
    )

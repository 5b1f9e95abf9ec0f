# quotegate/config.py
# Purpose: Environment-driven settings for the quote proxy and the AI proxy.
# Pitfalls: Keys are read once per process by get_settings(); restart to rotate them.

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

AI_PROVIDERS = ("gemini", "openai", "anthropic")

# provider -> (default model, endpoint)
_AI_DEFAULTS: dict[str, tuple[str, str]] = {
    "gemini": ("gemini-1.5-flash", "https://generativelanguage.googleapis.com/v1beta/models"),
    "openai": ("gpt-4-turbo-preview", "https://api.openai.com/v1/chat/completions"),
    "anthropic": ("claude-3-sonnet-20240229", "https://api.anthropic.com/v1/messages"),
}

_AI_KEY_ENV = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass(frozen=True)
class AIConfig:
    provider: str
    api_key: str
    model: str
    endpoint: str


@dataclass(frozen=True)
class Settings:
    finnhub_api_key: str = ""
    quote_provider: str = "finnhub"
    finnhub_base_url: str = "https://finnhub.io/api/v1"
    forex_rate_url: str = "https://open.er-api.com/v6/latest/EUR"

    rate_limit: int = 30
    rate_window_sec: float = 60.0
    http_timeout_sec: float = 10.0

    ai: AIConfig = AIConfig(
        provider="gemini", api_key="", model=_AI_DEFAULTS["gemini"][0], endpoint=_AI_DEFAULTS["gemini"][1]
    )
    ai_system_prompt: str = ""
    ai_max_retries: int = 3
    ai_initial_delay_sec: float = 1.0


def load_ai_config(provider: str | None = None) -> AIConfig:
    """Resolve the active AI backend; unknown providers fall back to gemini."""
    name = (provider or os.getenv("AI_PROVIDER", "gemini")).strip().lower()
    if name not in AI_PROVIDERS:
        name = "gemini"
    model, endpoint = _AI_DEFAULTS[name]
    return AIConfig(
        provider=name,
        api_key=os.getenv(_AI_KEY_ENV[name], ""),
        model=os.getenv("AI_MODEL") or model,
        endpoint=endpoint,
    )


def load_settings() -> Settings:
    return Settings(
        finnhub_api_key=os.getenv("FINNHUB_API_KEY", ""),
        quote_provider=os.getenv("QUOTE_PROVIDER", "finnhub").strip().lower(),
        finnhub_base_url=os.getenv("FINNHUB_BASE_URL", "https://finnhub.io/api/v1").rstrip("/"),
        forex_rate_url=os.getenv("FOREX_RATE_URL", "https://open.er-api.com/v6/latest/EUR"),
        rate_limit=int(os.getenv("QG_RATE_LIMIT", "30")),
        rate_window_sec=float(os.getenv("QG_RATE_WINDOW_SEC", "60")),
        http_timeout_sec=float(os.getenv("QG_HTTP_TIMEOUT_SEC", "10")),
        ai=load_ai_config(),
        ai_system_prompt=os.getenv("AI_SYSTEM_PROMPT", ""),
        ai_max_retries=int(os.getenv("QG_AI_MAX_RETRIES", "3")),
        ai_initial_delay_sec=float(os.getenv("QG_AI_INITIAL_DELAY_SEC", "1.0")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()

# quotegate/ai_client.py
# Purpose: Opaque text completion against the configured LLM provider.
# Why: Keeps provider keys server-side; the browser only sees {analysis: text}.
# Pitfalls: Output is untrusted free text. Structure is recovered by quotegate.extract.

from __future__ import annotations

import logging
from typing import Any

from quotegate.config import AIConfig, Settings
from quotegate.errors import ConfigurationError, UpstreamFormatError
from quotegate.retry import RetryingCaller

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
MAX_OUTPUT_TOKENS = 4096


def build_request(cfg: AIConfig, prompt: str, system_prompt: str = "") -> tuple[str, dict[str, str], dict[str, Any]]:
    """Return (url, headers, json body) for one completion on the given provider."""
    if cfg.provider == "openai":
        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages.append({"role": "user", "content": prompt})
        return (
            cfg.endpoint,
            {"Authorization": f"Bearer {cfg.api_key}", "Content-Type": "application/json"},
            {"model": cfg.model, "messages": messages},
        )
    if cfg.provider == "anthropic":
        body: dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        return (
            cfg.endpoint,
            {
                "x-api-key": cfg.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            body,
        )
    # gemini
    body = {"contents": [{"parts": [{"text": prompt}]}]}
    if system_prompt:
        body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    return (
        f"{cfg.endpoint}/{cfg.model}:generateContent",
        {"x-goog-api-key": cfg.api_key, "Content-Type": "application/json"},
        body,
    )


def extract_text(provider: str, data: Any) -> str | None:
    """Dig the generated text out of a provider response, None if absent."""
    try:
        if provider == "openai":
            return data["choices"][0]["message"]["content"] or None
        if provider == "anthropic":
            return "".join(
                block.get("text", "") for block in data["content"] if block.get("type") == "text"
            ) or None
        return data["candidates"][0]["content"]["parts"][0]["text"] or None
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


class AICompletionClient:
    def __init__(self, settings: Settings, caller: RetryingCaller):
        self.settings = settings
        self._caller = caller

    @property
    def config(self) -> AIConfig:
        return self.settings.ai

    async def complete(self, prompt: str) -> str:
        cfg = self.config
        if not cfg.api_key:
            raise ConfigurationError(f"Configuration serveur manquante : clé API {cfg.provider} introuvable.")

        url, headers, body = build_request(cfg, prompt, self.settings.ai_system_prompt)
        data = await self._caller.call(
            "POST",
            url,
            json=body,
            headers=headers,
            max_retries=self.settings.ai_max_retries,
            initial_delay=self.settings.ai_initial_delay_sec,
        )
        text = extract_text(cfg.provider, data)
        if not text:
            raise UpstreamFormatError("L'IA n'a pas généré de contenu")
        logger.info("completion from %s/%s (%d chars)", cfg.provider, cfg.model, len(text))
        return text

# quotegate/advisor.py
# Purpose: Client side of POST /api/ai: send a prompt, recover the JSON object the
#   model was asked to produce.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from quotegate.extract import Extraction, extract_json_object

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    ok: bool
    text: str | None = None
    data: dict[str, Any] | None = None
    error: str | None = None


class AnalysisClient:
    def __init__(self, client: httpx.AsyncClient, ai_path: str = "/api/ai"):
        self._client = client
        self.ai_path = ai_path

    async def analyze(self, prompt: str) -> AnalysisResult:
        try:
            resp = await self._client.post(self.ai_path, json={"prompt": prompt})
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("analysis request failed: %s", e)
            return AnalysisResult(ok=False, error="L'IA est momentanément indisponible.")

        if resp.status_code != 200 or not isinstance(body, dict) or "analysis" not in body:
            err = body.get("message") or body.get("error") if isinstance(body, dict) else None
            return AnalysisResult(ok=False, error=err or "L'IA est momentanément indisponible.")

        text = body["analysis"]
        extraction: Extraction = extract_json_object(text)
        if not extraction.found:
            return AnalysisResult(ok=False, text=text, error="Aucune donnée structurée dans la réponse")
        return AnalysisResult(ok=True, text=text, data=extraction.data)

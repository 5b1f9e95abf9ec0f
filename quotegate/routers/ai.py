# quotegate/routers/ai.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from quotegate.ai_client import AICompletionClient
from quotegate.dependencies import get_ai_client
from quotegate.errors import QuoteGateError
from quotegate.schemas import AIRequest, AIResponse, ErrorResponse

router = APIRouter(prefix="/api", tags=["ai"])
logger = logging.getLogger(__name__)


@router.post("/ai", response_model=AIResponse)
async def ai(
    body: AIRequest | None = None,
    client: AICompletionClient = Depends(get_ai_client),
):
    """Forward a prompt to the configured LLM; returns its raw text as `analysis`."""
    prompt = body.prompt.strip() if body and body.prompt else ""
    if not prompt:
        return JSONResponse(status_code=400, content={"error": "Le prompt est requis"})

    try:
        text = await client.complete(prompt)
    except QuoteGateError as e:
        logger.error("AI completion failed: %s", e.message)
        content = ErrorResponse(error="Échec de l'analyse IA", message=e.message)
        return JSONResponse(status_code=500, content=content.model_dump(exclude_none=True))
    return AIResponse(analysis=text)

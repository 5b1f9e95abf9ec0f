# quotegate/main.py
from __future__ import annotations

from collections.abc import Sized
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError

from quotegate.ai_client import AICompletionClient
from quotegate.config import get_settings
from quotegate.dependencies import get_quote_service
from quotegate.errors import (
    QuoteGateError,
    quotegate_error_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from quotegate.logging_conf import setup_logging

# --- Observability ---
from quotegate.observability import metrics_endpoint, timing_middleware
from quotegate.quotes import QuoteService
from quotegate.retry import RetryingCaller

# --- Routers ---
from quotegate.routers import ai, market
from quotegate.routes_stream import router as stream_router
from quotegate.schemas import HealthResponse, VersionResponse
from quotegate.utils import utc_now_iso
from quotegate.version import service_version_payload


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide services once; they own the cache and the rate window."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout_sec) as client:
        app.state.quote_service = QuoteService(settings, client)
        app.state.ai_client = AICompletionClient(settings, RetryingCaller(client))
        yield


# --- App ---
setup_logging()
app = FastAPI(title="quotegate", version=service_version_payload()["service_version"], lifespan=lifespan)

# --- Include routers ---
app.include_router(market.router)
app.include_router(ai.router)
app.include_router(stream_router)

# --- Errors ---
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(QuoteGateError, quotegate_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# --- Observability ---
app.middleware("http")(timing_middleware)


# --- Utility endpoints ---


@app.get("/health", response_model=HealthResponse)
def health(service: QuoteService = Depends(get_quote_service)):
    # Report on the settings the running service was built with
    settings = service.settings
    quote_ok = bool(settings.finnhub_api_key)
    ai_ok = bool(settings.ai.api_key)
    return HealthResponse(
        status="ok" if (quote_ok and ai_ok) else "degraded",
        as_of=utc_now_iso(),
        quote_key=quote_ok,
        ai_key=ai_ok,
        cache_entries=len(service.cache) if isinstance(service.cache, Sized) else None,
        rate_remaining=getattr(service.limiter, "remaining", None),
    )


@app.get("/version", response_model=VersionResponse)
def version(service: QuoteService = Depends(get_quote_service)):
    settings = service.settings
    return VersionResponse(
        service_version=service_version_payload()["service_version"],
        quote_provider=settings.quote_provider,
        ai_provider=settings.ai.provider,
        ai_model=settings.ai.model,
    )


@app.get("/metrics")
def metrics():
    return metrics_endpoint()

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    QUOTE = "quote"
    PROFILE = "profile"
    FOREX = "forex"


# --- Upstream payloads ---
class Quote(BaseModel):
    """Quote snapshot. Upstream may omit any field, so every field is optional."""

    model_config = ConfigDict(extra="ignore")

    c: float | None = None  # current price
    d: float | None = None  # absolute change
    dp: float | None = None  # percent change
    h: float | None = None
    l: float | None = None  # noqa: E741
    o: float | None = None
    pc: float | None = None  # previous close
    t: int | None = None
    cached: bool | None = None

    @property
    def has_price(self) -> bool:
        return bool(self.c) and self.c > 0


class Profile(BaseModel):
    # Company metadata is passed through as-is
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    logo: str | None = None
    ticker: str | None = None


class LimitedQuote(BaseModel):
    error: str
    symbol: str
    c: float = 0
    limited: Literal[True] = True


class SearchHit(BaseModel):
    symbol: str
    description: str | None = None
    displaySymbol: str | None = None


class SearchResponse(BaseModel):
    results: list[SearchHit]
    count: int


# --- AI proxy ---
class AIRequest(BaseModel):
    prompt: str | None = None


class AIResponse(BaseModel):
    analysis: str


# --- Client-side price map entry ---
class PricePoint(BaseModel):
    price: float
    change: float = 0.0
    change_percent: float = 0.0


# --- Health / version ---
class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    as_of: str
    service: Literal["quotegate"] = "quotegate"
    quote_key: bool
    ai_key: bool
    cache_entries: int | None = Field(default=None, ge=0)
    rate_remaining: int | None = None


class VersionResponse(BaseModel):
    service_version: str
    quote_provider: str
    ai_provider: str
    ai_model: str


class ErrorResponse(BaseModel):
    error: str
    message: str | None = None
    details: str | None = None

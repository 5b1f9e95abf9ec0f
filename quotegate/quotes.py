"""
Quote retrieval for the dashboard, shielded by a cache and a local request budget.

Returns (body of QuoteResult):
  quote    -> {c, d, dp, h, l, o, pc, t}            (+ "cached": true on a cache hit)
  profile  -> {name, logo, ticker, ...} or {}       (failures degrade to {})
  forex    -> {c: rate, d: 0, dp: 0, t: now}        (EUR/USD only)
  limited  -> {error, symbol, c: 0, limited: true}  at status 429

Notes / Pitfalls:
- Finnhub free tier allows 60 calls/min across ALL symbols; we spend at most
  `rate_limit` per window locally and pass upstream 429s through as limited bodies.
- Limited responses are data, not exceptions: pollers render "no data" and retry on
  their next tick.
- One QuoteService per process. Cache and budget are not shared across instances.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from quotegate.cache import FOREX_PREFIX, PROFILE_PREFIX, QuoteCache, QuoteStore
from quotegate.config import Settings
from quotegate.errors import (
    ClientInputError,
    ConfigurationError,
    LocalThrottleError,
    UpstreamFormatError,
    UpstreamServerError,
)
from quotegate.observability import CACHE_LOOKUPS, THROTTLED, UPSTREAM_REQUESTS
from quotegate.rate_limit import RateGate, RateLimiter
from quotegate.schemas import Intent, LimitedQuote, Profile, Quote, SearchHit, SearchResponse
from quotegate.utils import normalize_symbol

logger = logging.getLogger(__name__)

# Only EUR/USD has a secondary rate source
FOREX_ALIASES = frozenset(
    {"EURUSD", "EUR/USD", "EUR-USD", "EUR_USD", "EURUSD=X", "FX:EURUSD", "OANDA:EUR_USD"}
)
FOREX_CANONICAL = "OANDA:EUR_USD"
FOREX_CACHE_KEY = f"{FOREX_PREFIX}EURUSD"

LIMIT_PHRASE = "limit reached"
SEARCH_MAX_RESULTS = 10

MISSING_KEY = "Clé API manquante"
MISSING_SYMBOL = "Symbole requis"
MARKET_ERROR = "Erreur lors de la récupération des données de marché"


def is_forex_alias(symbol: str) -> bool:
    return normalize_symbol(symbol) in FOREX_ALIASES


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _signals_limit(data: Any) -> bool:
    """True when the upstream body says the quota is spent (it does not always use 429)."""
    if not isinstance(data, dict):
        return False
    err = data.get("error")
    return isinstance(err, str) and LIMIT_PHRASE in err.lower()


@dataclass
class QuoteResult:
    body: dict[str, Any] = field(default_factory=dict)
    status_code: int = 200

    @property
    def limited(self) -> bool:
        return bool(self.body.get("limited"))


class QuoteService:
    """Process-wide quote fetcher. Owns the cache and the rate window it spends from."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: QuoteStore | None = None,
        limiter: RateGate | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._client = client
        self._clock = clock
        self.cache = cache if cache is not None else QuoteCache(clock=clock)
        self.limiter = (
            limiter
            if limiter is not None
            else RateLimiter(settings.rate_limit, settings.rate_window_sec, clock=clock)
        )

    # ------------------------------------------------------------------ helpers
    def _require_key(self) -> str:
        if self.settings.quote_provider != "finnhub":
            raise ConfigurationError(
                f"Fournisseur de cotations non supporté: {self.settings.quote_provider}"
            )
        if not self.settings.finnhub_api_key:
            raise ConfigurationError(MISSING_KEY)
        return self.settings.finnhub_api_key

    def _url(self, path: str) -> str:
        return f"{self.settings.finnhub_base_url}{path}"

    @staticmethod
    def _limited(symbol: str, message: str) -> QuoteResult:
        body = LimitedQuote(error=message, symbol=symbol).model_dump()
        return QuoteResult(body=body, status_code=429)

    # ------------------------------------------------------------------ public API
    async def fetch(self, symbol: str | None, intent: Intent | str = Intent.QUOTE) -> QuoteResult:
        """
        Resolve one symbol for one intent.
        Behavior:
          - Missing symbol -> ClientInputError; missing key -> ConfigurationError,
            both before any cache lookup or upstream call.
          - A EUR/USD alias is served from the forex source even when intent is omitted;
            if that source fails we fall through to the quote path.
        """
        sym = normalize_symbol(symbol)
        if not sym:
            raise ClientInputError(MISSING_SYMBOL)
        try:
            intent = Intent(intent)
        except ValueError:
            raise ClientInputError(f"Type inconnu: {intent}") from None
        self._require_key()

        if intent is Intent.PROFILE:
            return QuoteResult(body=await self.fetch_profile(sym))

        if is_forex_alias(sym):
            quote = await self.fetch_forex()
            if quote is not None:
                return QuoteResult(body=quote.model_dump(exclude_none=True))
            sym = FOREX_CANONICAL

        return await self.fetch_quote(sym)

    async def fetch_quote(self, sym: str) -> QuoteResult:
        cached = self.cache.get(sym)
        if cached is not None:
            CACHE_LOOKUPS.labels(intent="quote", result="hit").inc()
            logger.debug("quote cache hit for %s", sym)
            return QuoteResult(body=cached.model_copy(update={"cached": True}).model_dump(exclude_none=True))
        CACHE_LOOKUPS.labels(intent="quote", result="miss").inc()

        if not self.limiter.try_acquire():
            THROTTLED.labels(source="local").inc()
            logger.warning("local rate budget exhausted, refusing %s", sym)
            return self._limited(sym, "Limite de requêtes atteinte, réessayez plus tard")

        token = self._require_key()
        try:
            r = await self._client.get(self._url("/quote"), params={"symbol": sym, "token": token})
        except httpx.RequestError as e:
            UPSTREAM_REQUESTS.labels(provider="finnhub", status="error").inc()
            logger.warning("quote request for %s failed: %s", sym, e)
            raise UpstreamServerError(MARKET_ERROR, details=str(e)) from e

        UPSTREAM_REQUESTS.labels(provider="finnhub", status=str(r.status_code)).inc()
        data = _json_or_none(r)

        if r.status_code == 429 or _signals_limit(data):
            THROTTLED.labels(source="upstream").inc()
            logger.warning("upstream rate limit hit for %s", sym)
            return self._limited(sym, "Limite API Finnhub atteinte")

        if r.is_error:
            raise UpstreamServerError(MARKET_ERROR, details=f"Finnhub API Error: {r.reason_phrase}")

        if not isinstance(data, dict):
            raise UpstreamFormatError(MARKET_ERROR, details="Réponse de marché illisible")
        try:
            quote = Quote.model_validate(data)
        except ValidationError as e:
            raise UpstreamFormatError(MARKET_ERROR, details=str(e)) from e

        # A zero/absent price is returned as-is but never cached
        if quote.has_price:
            self.cache.set(sym, quote)
        logger.info("quote fetched for %s", sym)
        return QuoteResult(body=quote.model_dump(exclude_none=True))

    async def fetch_profile(self, sym: str) -> dict[str, Any]:
        """Company metadata; any failure degrades to an empty object. Callers get a copy of the cached dict."""
        key = f"{PROFILE_PREFIX}{sym}"
        cached = self.cache.get(key)
        if cached is not None:
            CACHE_LOOKUPS.labels(intent="profile", result="hit").inc()
            return dict(cached)
        CACHE_LOOKUPS.labels(intent="profile", result="miss").inc()

        token = self._require_key()
        try:
            r = await self._client.get(
                self._url("/stock/profile2"), params={"symbol": sym, "token": token}
            )
            UPSTREAM_REQUESTS.labels(provider="finnhub", status=str(r.status_code)).inc()
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("profile lookup for %s failed: %s", sym, e)
            return {}

        if not isinstance(data, dict) or not data.get("name"):
            return {}
        try:
            profile = Profile.model_validate(data).model_dump(exclude_none=True)
        except ValidationError as e:
            logger.warning("profile for %s unreadable: %s", sym, e)
            return {}
        self.cache.set(key, profile)
        return dict(profile)

    async def fetch_forex(self) -> Quote | None:
        """EUR/USD from the secondary rate source, or None so the caller can fall back."""
        cached = self.cache.get(FOREX_CACHE_KEY)
        if cached is not None:
            CACHE_LOOKUPS.labels(intent="forex", result="hit").inc()
            return cached.model_copy(update={"cached": True})
        CACHE_LOOKUPS.labels(intent="forex", result="miss").inc()

        try:
            r = await self._client.get(self.settings.forex_rate_url)
            UPSTREAM_REQUESTS.labels(provider="forex", status=str(r.status_code)).inc()
            r.raise_for_status()
            rate = float(r.json()["rates"]["USD"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("forex source failed, falling back to quote path: %s", e)
            return None
        if rate <= 0:
            return None

        quote = Quote(c=rate, d=0, dp=0, t=int(self._clock()))
        self.cache.set(FOREX_CACHE_KEY, quote)
        return quote

    async def search(self, query: str | None) -> SearchResponse:
        """Common-stock symbol search; spends from the same budget as quotes."""
        q = (query or "").strip()
        if not q:
            raise ClientInputError("Query parameter is required")
        token = self._require_key()
        if not self.limiter.try_acquire():
            THROTTLED.labels(source="local").inc()
            raise LocalThrottleError("Limite de requêtes atteinte, réessayez plus tard")

        try:
            r = await self._client.get(self._url("/search"), params={"q": q, "token": token})
        except httpx.RequestError as e:
            UPSTREAM_REQUESTS.labels(provider="finnhub", status="error").inc()
            raise UpstreamServerError("Failed to fetch stock data", details=str(e)) from e
        UPSTREAM_REQUESTS.labels(provider="finnhub", status=str(r.status_code)).inc()
        if r.is_error:
            logger.warning("symbol search failed with %s", r.status_code)
            raise UpstreamServerError("Failed to fetch stock data", status_code=r.status_code)

        data = _json_or_none(r)
        items = data.get("result") if isinstance(data, dict) else None
        hits = [
            SearchHit(
                symbol=item["symbol"],
                description=item.get("description"),
                displaySymbol=item.get("displaySymbol"),
            )
            for item in (items or [])
            if isinstance(item, dict) and item.get("type") == "Common Stock" and item.get("symbol")
        ][:SEARCH_MAX_RESULTS]
        return SearchResponse(results=hits, count=len(hits))

# quotegate/routers/market.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from quotegate.dependencies import get_quote_service
from quotegate.quotes import QuoteService
from quotegate.schemas import SearchResponse

router = APIRouter(prefix="/api", tags=["market"])


@router.get("/market")
async def market(
    symbol: str | None = Query(None, description="Ticker, e.g. AAPL or OANDA:EUR_USD"),
    intent: str | None = Query(None, alias="type", description="profile | forex | quote (default)"),
    service: QuoteService = Depends(get_quote_service),
) -> JSONResponse:
    """Quote, company profile or EUR/USD rate for one symbol."""
    result = await service.fetch(symbol, intent or "quote")
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/stock-search", response_model=SearchResponse)
async def stock_search(
    q: str | None = Query(None, description="Free-text company or ticker query"),
    service: QuoteService = Depends(get_quote_service),
) -> SearchResponse:
    return await service.search(q)

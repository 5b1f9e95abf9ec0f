# quotegate/routes_stream.py
from __future__ import annotations

import asyncio
import json

import httpx
from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from quotegate.poller import DEFAULT_BATCH_SIZE, ClientPoller

router = APIRouter()


@router.get("/api/stream/prices")
async def stream_prices(
    request: Request,
    symbols: str = Query(..., description="Comma-separated tickers, e.g. AAPL,MSFT"),
    refresh_sec: float = Query(60.0, ge=1.0),
    batched: bool = Query(False, description="Poll 15 symbols per tick instead of all"),
) -> StreamingResponse:
    """
    Server-Sent Events stream of the poller's price map.
    Each frame is the full map after a tick: `data: {"prices": {...}, "last_updated": ...}`.

    Why this way?
    - Reuses /api/market (cache + budget) through loopback instead of a second fetch path.
    - Ticks are paced by refresh_sec; the trading-window check is off so a stream
      always produces frames.
    """
    port = request.url.port or 8000
    base_url = f"http://127.0.0.1:{port}"
    wanted = [s for s in symbols.split(",") if s.strip()]

    async def event_gen():
        timeout = httpx.Timeout(10.0, read=10.0)
        async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
            poller = ClientPoller(
                client,
                interval=refresh_sec,
                batch_size=DEFAULT_BATCH_SIZE if batched else None,
                trading_window=None,
            )
            poller.set_symbols(wanted)
            while True:
                if await request.is_disconnected():
                    break
                await poller.tick()
                frame = {
                    "prices": {k: v.model_dump() for k, v in poller.prices.items()},
                    "last_updated": poller.last_updated,
                }
                yield f"data: {json.dumps(frame)}\n\n"
                await asyncio.sleep(refresh_sec)

    return StreamingResponse(event_gen(), media_type="text/event-stream")

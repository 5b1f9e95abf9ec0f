"""
Client-side price poller for the quote proxy.

Keeps a live `prices` map for a set of symbols by calling GET /api/market:
  - fetches immediately when the symbol set changes (content, not identity)
  - re-polls every `interval` seconds in a background task
  - optionally polls only a round-robin batch per tick to spread upstream cost
  - skips ticks outside the local trading window (07:30-23:00 by default)

Merge-on-success: a symbol whose fetch fails (429, non-200, limited payload, no
price, transport error) keeps its previous price. One symbol never fails a batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from datetime import time as dtime
from typing import Any

import httpx

from quotegate.schemas import PricePoint
from quotegate.utils import normalize_symbol

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SEC = 60.0
DEFAULT_BATCH_SIZE = 15
TRADING_WINDOW = (dtime(7, 30), dtime(23, 0))


def symbols_key(symbols: Iterable[str]) -> str:
    """Order-insensitive identity of a symbol list."""
    return ",".join(sorted({s for s in (normalize_symbol(x) for x in symbols) if s}))


def in_trading_window(now: datetime, window: tuple[dtime, dtime] | None) -> bool:
    if window is None:
        return True
    start, end = window
    minutes = now.hour * 60 + now.minute
    return start.hour * 60 + start.minute <= minutes <= end.hour * 60 + end.minute


class ClientPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        market_path: str = "/api/market",
        interval: float = DEFAULT_INTERVAL_SEC,
        batch_size: int | None = None,
        trading_window: tuple[dtime, dtime] | None = TRADING_WINDOW,
        now: Callable[[], datetime] = datetime.now,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size is not None and batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._client = client
        self.market_path = market_path
        self.interval = interval
        self.batch_size = batch_size
        self.trading_window = trading_window
        self._now = now
        self._clock = clock
        self._sleep = sleep

        self.prices: dict[str, PricePoint] = {}
        self.last_updated: float | None = None
        self.is_refreshing = False

        self._symbols: list[str] = []
        self._key = ""
        self._batch_index = 0
        self._task: asyncio.Task | None = None

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    def set_symbols(self, symbols: Iterable[str]) -> bool:
        """Replace the tracked set; returns True only when its content changed."""
        key = symbols_key(symbols)
        if key == self._key:
            return False
        self._key = key
        self._symbols = key.split(",") if key else []
        self._batch_index = 0
        return True

    async def observe(self, symbols: Iterable[str]) -> dict[str, PricePoint]:
        """Track `symbols` and return the live price map (updated in place)."""
        if self.set_symbols(symbols):
            await self.tick()
        self.start()
        return self.prices

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                # keep polling; the next tick may succeed
                logger.exception("poll tick failed")

    async def tick(self) -> dict[str, PricePoint]:
        """One timer-driven cycle; skipped outside the trading window."""
        if not in_trading_window(self._now(), self.trading_window):
            logger.info("outside trading window, skipping poll")
            return {}
        return await self._fetch(self._next_batch())

    async def refresh(self, all_symbols: bool = False) -> dict[str, PricePoint]:
        """Manual refresh: next batch (or everything) right now, ignoring the timer."""
        batch = list(self._symbols) if all_symbols else self._next_batch()
        return await self._fetch(batch)

    def next_refresh_in(self) -> float:
        if self.last_updated is None:
            return 0.0
        return max(0.0, self.interval - (self._clock() - self.last_updated))

    def _next_batch(self) -> list[str]:
        syms = self._symbols
        if not syms:
            return []
        if self.batch_size is None or len(syms) <= self.batch_size:
            return list(syms)
        n_batches = math.ceil(len(syms) / self.batch_size)
        start = self._batch_index * self.batch_size
        self._batch_index = (self._batch_index + 1) % n_batches
        return syms[start : start + self.batch_size]

    async def _fetch_one(self, symbol: str) -> PricePoint | None:
        try:
            resp = await self._client.get(self.market_path, params={"symbol": symbol})
        except httpx.HTTPError as e:
            logger.warning("fetch %s failed: %s", symbol, e)
            return None

        if resp.status_code == 429:
            logger.warning("rate limited for %s, keeping previous price", symbol)
            return None
        if resp.status_code != 200:
            logger.warning("fetch %s returned %s", symbol, resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("fetch %s returned a non-JSON body", symbol)
            return None

        if not isinstance(data, dict) or data.get("limited"):
            return None
        price = data.get("c")
        if isinstance(price, bool) or not isinstance(price, int | float) or price <= 0:
            return None
        return PricePoint(
            price=price,
            change=data.get("d") or 0.0,
            change_percent=data.get("dp") or 0.0,
        )

    async def _fetch(self, batch: list[str]) -> dict[str, PricePoint]:
        if not batch:
            return {}
        logger.info("refreshing market batch: %s", ", ".join(batch))
        self.is_refreshing = True
        try:
            results = await asyncio.gather(*(self._fetch_one(s) for s in batch))
        finally:
            self.is_refreshing = False

        fresh = {sym: p for sym, p in zip(batch, results) if p is not None}
        self.prices.update(fresh)
        self.last_updated = self._clock()
        return fresh

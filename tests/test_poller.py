"""ClientPoller tests: batching, isolation and the trading window."""

from __future__ import annotations

import asyncio
from datetime import datetime
from datetime import time as dtime

import httpx
import pytest
from conftest import FakeClock, Upstream

from quotegate.poller import ClientPoller, in_trading_window, symbols_key
from quotegate.schemas import PricePoint

NOON = datetime(2026, 3, 2, 12, 0)


async def park(_seconds: float) -> None:
    # background loop never advances on its own in tests
    await asyncio.Event().wait()


def price_server(prices: dict[str, dict], failures: dict[str, object] | None = None) -> Upstream:
    if failures is None:
        failures = {}

    def handler(request: httpx.Request) -> httpx.Response:
        sym = request.url.params["symbol"]
        failure = failures.get(sym)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, httpx.Response):
            return failure
        return httpx.Response(200, json=prices.get(sym, {"c": 0}))

    return Upstream(handler)


def make_poller(server: Upstream, **kwargs) -> ClientPoller:
    kwargs.setdefault("now", lambda: NOON)
    kwargs.setdefault("sleep", park)
    kwargs.setdefault("clock", FakeClock())
    return ClientPoller(server.client(base_url="http://qg.test"), **kwargs)


def test_symbols_key_is_content_based():
    assert symbols_key(["msft", "AAPL", "MSFT", " "]) == "AAPL,MSFT"
    assert symbols_key([]) == ""


def test_trading_window_bounds():
    window = (dtime(7, 30), dtime(23, 0))
    assert not in_trading_window(datetime(2026, 1, 1, 7, 29), window)
    assert in_trading_window(datetime(2026, 1, 1, 7, 30), window)
    assert in_trading_window(datetime(2026, 1, 1, 23, 0, 30), window)
    assert not in_trading_window(datetime(2026, 1, 1, 23, 1), window)
    assert in_trading_window(datetime(2026, 1, 1, 3, 0), None)


@pytest.mark.asyncio
async def test_failed_symbol_keeps_previous_price_and_batch_survives():
    prices = {"A": {"c": 10, "d": 1, "dp": 10}, "B": {"c": 20}, "C": {"c": 30, "d": -1, "dp": -3.2}}
    failures: dict[str, object] = {}
    server = price_server(prices, failures)
    poller = make_poller(server)
    poller.set_symbols(["A", "B", "C"])

    await poller.tick()
    assert poller.prices["B"] == PricePoint(price=20)

    prices["A"] = {"c": 11, "d": 2, "dp": 20}
    prices["C"] = {"c": 31}
    failures["B"] = httpx.ConnectError("network down")
    fresh = await poller.tick()

    assert set(fresh) == {"A", "C"}
    assert poller.prices["A"] == PricePoint(price=11, change=2, change_percent=20)
    assert poller.prices["C"].price == 31
    assert poller.prices["B"].price == 20


@pytest.mark.asyncio
async def test_never_fetched_failure_is_omitted():
    server = price_server(
        {"A": {"c": 1}},
        {
            "B": httpx.Response(429, json={"error": "x", "symbol": "B", "c": 0, "limited": True}),
            "C": httpx.Response(500, json={"error": "boom"}),
            "D": httpx.Response(200, json={"error": "x", "symbol": "D", "c": 0, "limited": True}),
        },
    )
    poller = make_poller(server)
    poller.set_symbols(["A", "B", "C", "D", "E"])  # E has no price
    await poller.tick()
    assert set(poller.prices) == {"A"}
    assert len(server.requests) == 5


@pytest.mark.asyncio
async def test_observe_fetches_once_per_content_change():
    server = price_server({"A": {"c": 1}, "B": {"c": 2}})
    poller = make_poller(server)
    try:
        live = await poller.observe(["A", "B"])
        assert set(live) == {"A", "B"}
        await poller.observe(["b", "a"])
        assert len(server.requests) == 2

        await poller.observe(["A", "B", "C"])
        assert len(server.requests) == 5
        assert live is poller.prices
    finally:
        await poller.stop()


@pytest.mark.asyncio
async def test_batches_rotate_round_robin():
    symbols = [f"S{i:02d}" for i in range(20)]
    server = price_server({s: {"c": 1} for s in symbols})
    poller = make_poller(server, batch_size=15)
    poller.set_symbols(symbols)

    first = await poller.tick()
    second = await poller.tick()
    third = await poller.tick()
    assert sorted(first) == symbols[:15]
    assert sorted(second) == symbols[15:]
    assert sorted(third) == symbols[:15]

    # a list change resets the cursor
    poller.set_symbols(symbols[:16])
    assert sorted(await poller.tick()) == symbols[:15]


@pytest.mark.asyncio
async def test_outside_window_skips_tick_but_manual_refresh_runs():
    server = price_server({"A": {"c": 5}})
    poller = make_poller(server, now=lambda: datetime(2026, 3, 2, 6, 0))
    poller.set_symbols(["A"])

    assert await poller.tick() == {}
    assert server.requests == []
    assert poller.last_updated is None

    await poller.refresh()
    assert poller.prices["A"].price == 5


@pytest.mark.asyncio
async def test_refresh_all_ignores_batching_and_sets_last_updated():
    clock = FakeClock()
    symbols = [f"S{i:02d}" for i in range(20)]
    server = price_server({s: {"c": 2} for s in symbols})
    poller = make_poller(server, batch_size=15, clock=clock, interval=60)
    poller.set_symbols(symbols)

    assert poller.next_refresh_in() == 0.0
    fresh = await poller.refresh(all_symbols=True)
    assert len(fresh) == 20
    assert poller.last_updated == clock.now
    clock.advance(20)
    assert poller.next_refresh_in() == 40


@pytest.mark.asyncio
async def test_background_loop_ticks_on_interval():
    server = price_server({"A": {"c": 1}})
    ticks = asyncio.Queue()

    async def fast_sleep(seconds: float) -> None:
        await ticks.put(seconds)
        await asyncio.sleep(0)

    poller = make_poller(server, sleep=fast_sleep, interval=300)
    try:
        await poller.observe(["A"])
        assert await ticks.get() == 300
        assert await ticks.get() == 300
        assert len(server.requests) >= 2
    finally:
        await poller.stop()


def test_invalid_batch_size():
    with pytest.raises(ValueError):
        ClientPoller(httpx.AsyncClient(), batch_size=0)

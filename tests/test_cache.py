"""Quote cache TTL tests."""

from conftest import FakeClock

from quotegate.cache import FOREX_TTL_SEC, PROFILE_TTL_SEC, QUOTE_TTL_SEC, QuoteCache, ttl_for


def test_ttl_depends_on_key_prefix():
    assert ttl_for("AAPL") == QUOTE_TTL_SEC == 600
    assert ttl_for("OANDA:EUR_USD") == FOREX_TTL_SEC == 120
    assert ttl_for("FX:EURUSD") == FOREX_TTL_SEC
    assert ttl_for("forex_EURUSD") == FOREX_TTL_SEC
    assert ttl_for("profile_AAPL") == PROFILE_TTL_SEC == 86400


def test_entry_fresh_until_ttl_then_purged():
    clock = FakeClock()
    cache = QuoteCache(clock=clock)
    cache.set("AAPL", {"c": 1})

    clock.advance(QUOTE_TTL_SEC - 1)
    assert cache.get("AAPL") == {"c": 1}

    clock.advance(1)  # age == ttl
    assert cache.get("AAPL") is None
    assert "AAPL" not in cache
    assert len(cache) == 0

    # purged, not just ignored: still gone later
    clock.advance(10_000)
    assert cache.get("AAPL") is None


def test_forex_entry_expires_before_stock_entry():
    clock = FakeClock()
    cache = QuoteCache(clock=clock)
    cache.set("AAPL", {"c": 1.08})
    cache.set("OANDA:EUR_USD", {"c": 1.08})

    clock.advance(3 * 60)
    assert cache.get("AAPL") == {"c": 1.08}
    assert cache.get("OANDA:EUR_USD") is None


def test_set_overwrites_and_restarts_age():
    clock = FakeClock()
    cache = QuoteCache(clock=clock)
    cache.set("MSFT", {"c": 1})
    clock.advance(500)
    cache.set("MSFT", {"c": 2})
    clock.advance(500)
    assert cache.get("MSFT") == {"c": 2}


def test_missing_key_and_clear():
    cache = QuoteCache(clock=FakeClock())
    assert cache.get("NOPE") is None
    cache.set("A", 1)
    cache.set("B", 2)
    cache.clear()
    assert len(cache) == 0

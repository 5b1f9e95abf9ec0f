# quotegate/cache.py
# Purpose: In-process quote cache with key-dependent TTLs.
# Why: The free upstream budget is shared by every symbol the dashboard polls.
# Pitfalls: Not persistent, not bounded, not shared between instances; entries are only
#   purged when a read finds them stale.

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

QUOTE_TTL_SEC = 10 * 60
FOREX_TTL_SEC = 2 * 60
PROFILE_TTL_SEC = 24 * 60 * 60

PROFILE_PREFIX = "profile_"
FOREX_PREFIX = "forex_"
FOREX_SYMBOL_PREFIXES = ("FX:", "OANDA:")


def ttl_for(key: str) -> float:
    """TTL in seconds for a cache key, derived from its prefix."""
    if key.startswith(PROFILE_PREFIX):
        return PROFILE_TTL_SEC
    if key.startswith(FOREX_PREFIX) or key.startswith(FOREX_SYMBOL_PREFIXES):
        return FOREX_TTL_SEC
    return QUOTE_TTL_SEC


class QuoteStore(Protocol):
    """Surface QuoteService needs; a shared store can stand in for QuoteCache."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, data: Any) -> None: ...


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


class QuoteCache:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        """Return cached data if still fresh, else None (dropping the stale entry)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.timestamp
        if age >= ttl_for(key):
            self._entries.pop(key, None)
            return None
        return entry.data

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, timestamp=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        # Raw membership, staleness is not checked
        return key in self._entries

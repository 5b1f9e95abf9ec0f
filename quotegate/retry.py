# quotegate/retry.py
# Purpose: "Call this endpoint, back off and retry on 429/5xx" for the AI proxy.
# Pitfalls: The quote path does NOT use this; pollers re-request on their own cadence.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import httpx

from quotegate.errors import UpstreamError
from quotegate.observability import AI_RETRIES

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SEC = 1.0


def is_retryable(status: int) -> bool:
    return status == 429 or status >= 500


def backoff_delays(max_retries: int, initial_delay: float) -> Iterator[float]:
    """Yield the sleep before each retry: initial, 2x, 4x, ... (max_retries values)."""
    delay = initial_delay
    for _ in range(max(max_retries, 0)):
        yield delay
        delay *= 2


def upstream_message(resp: httpx.Response) -> str:
    """Best-effort error text from an upstream body, else the raw status."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return f"HTTP {resp.status_code} {resp.reason_phrase}".strip()


class RetryingCaller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._sleep = sleep

    async def call(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SEC,
    ) -> Any:
        """Return the parsed JSON body of the first successful response."""
        delays = backoff_delays(max_retries, initial_delay)
        while True:
            try:
                resp = await self._client.request(method, url, json=json, headers=headers, params=params)
            except httpx.RequestError as e:
                raise UpstreamError(f"Upstream unreachable: {e}", status=502) from e

            if resp.is_success:
                try:
                    return resp.json()
                except ValueError as e:
                    raise UpstreamError("Upstream returned a non-JSON body", status=502) from e

            if not is_retryable(resp.status_code):
                raise UpstreamError(upstream_message(resp), status=resp.status_code)

            delay = next(delays, None)
            if delay is None:
                raise UpstreamError(upstream_message(resp), status=resp.status_code)

            AI_RETRIES.labels(status=str(resp.status_code)).inc()
            logger.warning("upstream returned %s, retrying in %.1fs", resp.status_code, delay)
            await self._sleep(delay)

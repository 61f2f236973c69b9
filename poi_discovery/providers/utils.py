"""
Shared utilities for provider modules.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

import aiohttp

from poi_discovery.exceptions import (
    ProviderNotAvailableError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


@asynccontextmanager
async def get_session(session: Optional[aiohttp.ClientSession] = None):
    """Context manager for aiohttp session handling.

    If session is provided, yields it.
    If not, creates a new session and closes it after use.
    """
    if session is not None:
        yield session
    else:
        async with aiohttp.ClientSession() as new_session:
            yield new_session


def raise_for_status(status: int, provider_name: str, url: str, body: str = ""):
    """Translate a non-200 HTTP status into the matching ``ProviderError``."""
    if status == 200:
        return
    details = {"status": status, "url": url}
    if body:
        details["body"] = body[:200]
    if status == 429:
        raise ProviderRateLimitError(f"{provider_name} rate limit exceeded", provider_name, details)
    if status in (502, 503):
        raise ProviderNotAvailableError(f"{provider_name} unavailable (HTTP {status})", provider_name, details)
    if status == 504:
        raise ProviderTimeoutError(f"{provider_name} gateway timeout", provider_name, details)
    raise ProviderResponseError(f"{provider_name} returned HTTP {status}", provider_name, details)


async def fetch_json(
    method: str,
    url: str,
    provider_name: str,
    params: Optional[Dict[str, Any]] = None,
    json_data: Optional[Dict[str, Any]] = None,
    data: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    session: Optional[aiohttp.ClientSession] = None,
) -> Any:
    """
    HTTP request returning decoded JSON, with errors mapped to ProviderError.

    Args:
        method: HTTP method
        url: The URL to request
        provider_name: Used in error messages and ``ProviderError.provider_name``
        params: Query parameters
        json_data: JSON payload
        data: Raw form/body payload
        headers: Request headers
        timeout: Request timeout in seconds
        session: Optional aiohttp session to reuse

    Returns:
        Decoded JSON body

    Raises:
        ProviderRateLimitError: HTTP 429
        ProviderNotAvailableError: HTTP 502/503 or connection failure
        ProviderTimeoutError: HTTP 504 or client timeout
        ProviderResponseError: Other status codes or undecodable body
    """
    kwargs: Dict[str, Any] = {"timeout": aiohttp.ClientTimeout(total=timeout)}
    if params is not None:
        kwargs["params"] = params
    if json_data is not None:
        kwargs["json"] = json_data
    if data is not None:
        kwargs["data"] = data
    if headers is not None:
        kwargs["headers"] = headers

    try:
        async with get_session(session) as sess:
            async with sess.request(method, url, **kwargs) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise_for_status(resp.status, provider_name, url, body)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise ProviderResponseError(
                        f"{provider_name} returned invalid JSON: {e}", provider_name, {"url": url}
                    )
    except asyncio.TimeoutError:
        raise ProviderTimeoutError(f"{provider_name} request timed out after {timeout}s", provider_name, {"url": url})
    except aiohttp.ClientError as e:
        logger.debug("%s %s failed: %s", method, url, e)
        raise ProviderNotAvailableError(f"{provider_name} request failed: {e}", provider_name, {"url": url})


class RateLimiter:
    """Enforce a minimum interval between consecutive requests.

    Callers queue on an asyncio lock, so concurrent ``wait()`` calls are
    spaced out one after another rather than released together.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

    async def wait(self):
        async with self._lock:
            if self._last_request is not None:
                remaining = self._last_request + self.min_interval - self._clock()
                if remaining > 0:
                    logger.debug("Rate limit: waiting %.2fs", remaining)
                    await self._sleep(remaining)
            self._last_request = self._clock()

"""
Session management for proper resource handling and connection pooling.

All source adapters of one orchestrator share a single ``aiohttp`` session
obtained from a ``SessionManager``; the owner closes it on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp

DEFAULT_USER_AGENT = "poi-discovery/1.0"


class SessionManager:
    """Lazily created, shared HTTP session."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: float = 30.0):
        self.user_agent = user_agent
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.closed

    async def get_session(self) -> aiohttp.ClientSession:
        """Get the shared HTTP session, creating it if necessary.

        Uses a lock to prevent two coroutines creating it at the same time.

        Returns:
            HTTP client session
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._session is None or self._session.closed:
                self._session = self._create_session()
            return self._session

    def _create_session(self) -> aiohttp.ClientSession:
        """Create a new HTTP session with pooled connections and default headers."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        connector = aiohttp.TCPConnector(
            limit=100,  # Max connections
            limit_per_host=20,  # Max connections per host
            enable_cleanup_closed=True,
            keepalive_timeout=30.0,
            ttl_dns_cache=300,
        )

        return aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers={
                'User-Agent': self.user_agent,
                'Accept': 'application/json',
            }
        )

    async def close(self):
        """Close the shared session and clean up resources."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None

    @asynccontextmanager
    async def session_context(self):
        """Yield the shared session and close it when the block exits.

        Example:
            async with SessionManager().session_context() as session:
                provider = OverpassProvider(session=session)
        """
        session = await self.get_session()
        try:
            yield session
        finally:
            await self.close()

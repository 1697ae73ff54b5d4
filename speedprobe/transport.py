"""
HTTP transport used by the stage testers.

``Transport`` is the narrow seam between measurement logic and the network:
three coroutines, each of which either completes or raises
``TransportError``.  ``AiohttpTransport`` is the production implementation;
all HTTP work goes through a single ``aiohttp.ClientSession`` managed via
async-context-manager protocol (``async with AiohttpTransport() as t: ...``).
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Mapping, Optional

import aiohttp

from .constants import (
    CHUNK_SIZE,
    COMMON_HEADERS,
    DEFAULT_CONNECTIONS,
    DEFAULT_TIMEOUT,
    NO_CACHE_HEADERS,
    UPLOAD_CONTENT_TYPE,
    USER_AGENT,
)
from .errors import TransportError

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Any]]


def cache_buster() -> int:
    """Random query value that defeats intermediate caches."""
    return random.randint(0, 2**31 - 1)


class Transport:
    """Interface every transport implements."""

    async def download(self, url: str, params: Params = None) -> int:
        """GET *url* and drain the body.  Returns the number of bytes read."""
        raise NotImplementedError

    async def upload(self, url: str, payload: bytes) -> None:
        """POST *payload* to *url* as opaque binary content."""
        raise NotImplementedError

    async def ping(self, url: str, params: Params = None) -> None:
        """Minimal uncached round trip to *url*."""
        raise NotImplementedError


class AiohttpTransport(Transport):
    """``aiohttp`` implementation sharing one session and connection pool."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        connections: int = DEFAULT_CONNECTIONS,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.timeout = timeout
        self.connections = connections
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> AiohttpTransport:
        connector = aiohttp.TCPConnector(
            limit=self.connections,
            limit_per_host=self.connections,
            force_close=False,
            enable_cleanup_closed=True,
        )
        self._session = aiohttp.ClientSession(
            headers={**COMMON_HEADERS, "User-Agent": self.user_agent},
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # -- Internal helpers ---------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "AiohttpTransport must be used as an async context manager "
                "(async with AiohttpTransport() as transport: ...)"
            )
        return self._session

    @staticmethod
    def _check_status(resp: aiohttp.ClientResponse) -> None:
        if not 200 <= resp.status < 300:
            raise TransportError(f"HTTP {resp.status} from {resp.url}", status=resp.status)

    # -- Transport ----------------------------------------------------------

    async def download(self, url: str, params: Params = None) -> int:
        session = self._ensure_session()
        try:
            async with session.get(url, params=params) as resp:
                self._check_status(resp)
                received = 0
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    received += len(chunk)
                return received
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Download from {url} timed out") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(f"Download from {url} failed: {exc}") from exc

    async def upload(self, url: str, payload: bytes) -> None:
        session = self._ensure_session()
        headers = {"Content-Type": UPLOAD_CONTENT_TYPE}
        try:
            async with session.post(url, data=payload, headers=headers) as resp:
                self._check_status(resp)
                await resp.read()
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Upload to {url} timed out") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(f"Upload to {url} failed: {exc}") from exc

    async def ping(self, url: str, params: Params = None) -> None:
        session = self._ensure_session()
        try:
            async with session.head(url, params=params, headers=NO_CACHE_HEADERS) as resp:
                self._check_status(resp)
                await resp.read()
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Ping to {url} timed out") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(f"Ping to {url} failed: {exc}") from exc

"""
The transfer primitive: metadata and (optionally ranged) GET requests over HTTP.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import aiohttp

log = logging.getLogger(__name__)

STREAM_READ_SIZE = 256 * 1024  # 256 KB


@dataclass(frozen=True)
class RemoteMetadata:
    """What a metadata-only request revealed about a resource."""

    size: int | None = None
    accepts_ranges: bool | None = None


class RemoteStream(Protocol):
    """An open response body."""

    status: int
    content_length: int | None

    def iter_chunks(self, size: int = STREAM_READ_SIZE) -> AsyncIterator[bytes]: ...

    async def read(self) -> bytes: ...


class RemoteSource(Protocol):
    """
    Remote resource access used by every downloader.

    ``stream`` raises a transport error (``aiohttp.ClientError``,
    ``asyncio.TimeoutError`` or ``OSError``) for failed requests and non-2xx
    statuses.
    """

    async def head(self, url: str) -> RemoteMetadata: ...

    def stream(
        self, url: str, byte_range: tuple[int, int] | None = None
    ) -> AbstractAsyncContextManager[RemoteStream]: ...


TRANSFER_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


class _AiohttpStream:
    """Adapts an aiohttp response to the RemoteStream protocol."""

    def __init__(self, response: aiohttp.ClientResponse):
        self._response = response
        self.status = response.status
        self.content_length = response.content_length

    async def iter_chunks(self, size: int = STREAM_READ_SIZE) -> AsyncIterator[bytes]:
        async for chunk in self._response.content.iter_chunked(size):
            yield chunk

    async def read(self) -> bytes:
        return await self._response.read()


def _parse_size(value: str | None) -> int | None:
    if value and value.strip().isdigit():
        size = int(value)
        return size if size > 0 else None
    return None


class HttpTransport:
    """
    An aiohttp-backed RemoteSource.

    Each transport owns one ClientSession, created lazily on first use and
    closed with ``close()`` (or by leaving ``async with``). Provisioning
    requests build their own transport, so nothing is shared between them.
    """

    def __init__(
        self,
        max_connections: int = 8,
        connect_timeout: float = 15.0,
        read_timeout: float = 90.0,
    ):
        self.max_connections = max_connections
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=600,  # 10 minutes
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.connect_timeout,
                sock_read=self.read_timeout,
            )
            # Byte offsets and sizes must refer to the stored bytes, not a
            # transfer encoding of them.
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"Accept-Encoding": "identity"},
            )
            log.debug(
                f"Created transfer session with limit_per_host={self.max_connections}"
            )
        return self._session

    async def head(self, url: str) -> RemoteMetadata:
        """Issues a HEAD request and reports the declared size and range support."""
        session = await self._get_session()
        async with session.head(url, allow_redirects=True) as response:
            response.raise_for_status()
            accept_ranges = response.headers.get("Accept-Ranges")
            return RemoteMetadata(
                size=_parse_size(response.headers.get("Content-Length")),
                accepts_ranges=(
                    None if accept_ranges is None else accept_ranges.lower() != "none"
                ),
            )

    @asynccontextmanager
    async def stream(
        self, url: str, byte_range: tuple[int, int] | None = None
    ) -> AsyncIterator[RemoteStream]:
        """Opens a GET request; ``byte_range`` is an inclusive (start, end) pair."""
        session = await self._get_session()
        headers = {}
        if byte_range is not None:
            headers["Range"] = f"bytes={byte_range[0]}-{byte_range[1]}"
        async with session.get(url, headers=headers, allow_redirects=True) as response:
            response.raise_for_status()
            yield _AiohttpStream(response)

    async def close(self) -> None:
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("Transfer session closed.")
            self._session = None

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

"""Streaming transports that deliver Server-Sent Events from an endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Protocol

import httpx

from .exceptions import TransportError
from .sse import ServerSentEvent, iter_sse_events

logger = logging.getLogger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class StreamTransport(Protocol):
    """Opens one-way event streams.

    Entering the returned context means the stream is established. Iterating
    it yields events until the peer closes the stream. Failures to connect or
    to keep reading are raised as TransportError.
    """

    def connect(self, url: str) -> AsyncContextManager[AsyncIterator[ServerSentEvent]]: ...


class HttpxTransport:
    """SSE transport over an httpx streaming GET."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        """Initialize transport.

        Args:
            client: Shared client to stream with. One is created (and owned) when omitted.
            timeout: Connect timeout in seconds. Reads never time out since streams are long-lived.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, read=None))

    @asynccontextmanager
    async def connect(self, url: str) -> AsyncIterator[AsyncIterator[ServerSentEvent]]:
        headers = {"Accept": EVENT_STREAM_CONTENT_TYPE, "Cache-Control": "no-cache"}
        try:
            async with self._client.stream("GET", url, headers=headers) as response:
                if response.status_code != 200:
                    raise TransportError(f"Stream request failed with HTTP {response.status_code}")
                content_type = response.headers.get("content-type", "")
                if not content_type.startswith(EVENT_STREAM_CONTENT_TYPE):
                    raise TransportError(f"Unexpected content type for event stream: {content_type or '(none)'}")

                logger.debug("Event stream opened", extra={"url": url})
                yield _guard_reads(iter_sse_events(response.aiter_lines()))
        except httpx.HTTPError as e:
            raise TransportError(f"Event stream connection failed: {e}") from e

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()


async def _guard_reads(events: AsyncIterator[ServerSentEvent]) -> AsyncIterator[ServerSentEvent]:
    """Surface mid-stream read failures as TransportError."""
    try:
        async for sse in events:
            yield sse
    except httpx.HTTPError as e:
        raise TransportError(f"Event stream read failed: {e}") from e

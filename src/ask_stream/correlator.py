"""Ties one connection to one query id so stale events never leak across queries."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .connection import ConnectionManager, ErrorHandler, OpenHandler
from .sse import ServerSentEvent

logger = logging.getLogger(__name__)

RawEventHandler = Callable[[str], None]


class SessionCorrelator:
    """Wraps a ConnectionManager for exactly one logical query."""

    def __init__(self, query_id: str, connection: ConnectionManager):
        self.query_id = query_id
        self.connection = connection
        self._active = True
        self._raw_handlers: list[RawEventHandler] = []
        connection.on_event(self._forward)

    @property
    def is_active(self) -> bool:
        return self._active

    def on_raw_event(self, handler: RawEventHandler) -> None:
        """Register a callback receiving the data field of each event while active."""
        self._raw_handlers.append(handler)

    def on_open(self, handler: OpenHandler) -> None:
        self.connection.on_open(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        self.connection.on_error(handler)

    def start(self, url: str) -> None:
        """Open the underlying connection for this query."""
        if not self._active:
            logger.debug(f"Not starting invalidated query {self.query_id}")
            return
        self.connection.open(url)

    def stop(self) -> None:
        """Close the connection and stop forwarding."""
        self.invalidate()
        self.connection.close()

    def invalidate(self) -> None:
        """Drop every event for this query from now on, even ones already in flight."""
        self._active = False

    def matches(self, query_id: str | None) -> bool:
        """Whether an event stamped with query_id belongs to this query.

        Events without a query id are accepted unconditionally.
        """
        if not self._active:
            return False
        if query_id is None:
            return True
        return query_id == self.query_id

    def _forward(self, sse: ServerSentEvent) -> None:
        if not self._active:
            logger.debug(f"Dropping event for inactive query {self.query_id}")
            return
        # Only unnamed (default "message") events carry query payloads
        if sse.event != "message":
            logger.debug(f"Ignoring named event {sse.event!r} for query {self.query_id}")
            return
        for handler in list(self._raw_handlers):
            handler(sse.data)

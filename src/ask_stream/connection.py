"""Managed event-stream connection with bounded exponential backoff.

The retry decision lives in ``backoff_delay``, a pure function of the retry
count, so the schedule can be checked without timers. ``ConnectionManager``
runs the imperative side: one supervisor task per open, which streams events,
sleeps between failed attempts and gives up once the policy says stop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .config import ConnectionSettings
from .exceptions import AskStreamError, RetriesExhaustedError, TransportError
from .sse import ServerSentEvent
from .transport import StreamTransport

logger = logging.getLogger(__name__)

EventHandler = Callable[[ServerSentEvent], None]
ErrorHandler = Callable[[AskStreamError], None]
OpenHandler = Callable[[], None]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Reconnect schedule: delay doubles per attempt up to a ceiling."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0

    @classmethod
    def from_settings(cls, settings: ConnectionSettings) -> BackoffPolicy:
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.initial_delay,
            max_delay=settings.max_delay,
        )


def backoff_delay(retry_count: int, policy: BackoffPolicy) -> float | None:
    """Delay in seconds before the next attempt, or None when retries are used up.

    Args:
        retry_count: Retries already made since the last successful open
        policy: Schedule to apply

    Returns:
        ``min(initial_delay * 2 ** (retry_count + 1), max_delay)`` or None
    """
    if retry_count >= policy.max_retries:
        return None
    return min(policy.initial_delay * 2 ** (retry_count + 1), policy.max_delay)


@dataclass
class ConnectionState:
    """Retry bookkeeping for one ConnectionManager."""

    max_retries: int
    retry_count: int = 0
    is_stopped: bool = False


class ConnectionManager:
    """Owns one streaming connection and reconnects it on transport failure."""

    def __init__(
        self,
        transport: StreamTransport,
        policy: BackoffPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize connection manager.

        Args:
            transport: Transport used to open the stream
            policy: Reconnect schedule (defaults to 3 retries, 1s base, 10s cap)
            sleep: Awaitable used for backoff waits; tests pass a recorder
        """
        self._transport = transport
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep
        self.state = ConnectionState(max_retries=self._policy.max_retries)

        self._url: str | None = None
        self._task: asyncio.Task[None] | None = None
        # Bumped on every open/close/reset; a supervisor whose generation is
        # stale must not touch the connection again.
        self._generation = 0
        self._connected = False

        self._event_handlers: list[EventHandler] = []
        self._error_handlers: list[ErrorHandler] = []
        self._open_handlers: list[OpenHandler] = []

    # --- Handlers ---

    def on_event(self, handler: EventHandler) -> None:
        """Register a callback for every received event."""
        self._event_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        """Register a callback for permanent failure (called at most once per open)."""
        self._error_handlers.append(handler)

    def on_open(self, handler: OpenHandler) -> None:
        """Register a callback for each successful (re)connection."""
        self._open_handlers.append(handler)

    # --- State ---

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_stopped(self) -> bool:
        return self.state.is_stopped

    # --- Lifecycle ---

    def open(self, url: str) -> None:
        """Start streaming from url. Must be called from a running event loop.

        Any connection this manager already holds is closed first. Opening a
        stopped manager does nothing; use reset() to restart it.
        """
        if self.state.is_stopped:
            logger.debug(f"Ignoring open() on stopped connection to {url}")
            return

        self._cancel_task()
        self._url = url
        self._generation += 1
        self._connected = False
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(self._generation, url))
        self._task.add_done_callback(self._on_task_done)

    def close(self) -> None:
        """Stop the connection. Idempotent and safe from inside an event handler."""
        if not self.state.is_stopped:
            logger.debug(f"Closing connection to {self._url}")
        self.state.is_stopped = True
        self._generation += 1
        self._connected = False
        self._cancel_task()

    def reset(self) -> None:
        """Clear retry state and reopen the last URL."""
        self.close()
        self.state.retry_count = 0
        self.state.is_stopped = False
        if self._url is not None:
            self.open(self._url)

    async def wait_closed(self) -> None:
        """Wait until the supervisor task (including any reset replacement) has finished."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def aclose(self) -> None:
        """Close and wait for the transport handle to be released."""
        self.close()
        await self.wait_closed()

    # --- Internals ---

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self.state.is_stopped

    def _cancel_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # From inside our own handler the supervisor sees the bumped
        # generation and unwinds by itself.
        if task is not current:
            task.cancel()

    async def _run(self, generation: int, url: str) -> None:
        while self._is_current(generation):
            try:
                async with self._transport.connect(url) as events:
                    if not self._is_current(generation):
                        return
                    self.state.retry_count = 0
                    self._connected = True
                    self._notify_open()

                    async for sse in events:
                        if not self._is_current(generation):
                            return
                        self._notify_event(sse)
                        if not self._is_current(generation):
                            return
                last_error: TransportError = TransportError("Event stream closed by peer")
            except TransportError as e:
                last_error = e
            finally:
                if generation == self._generation:
                    self._connected = False

            if not self._is_current(generation):
                return

            logger.info(f"Connection to {url} was closed: {last_error}")
            delay = backoff_delay(self.state.retry_count, self._policy)
            if delay is None:
                logger.warning(f"Max retries reached ({self._policy.max_retries}), stopping reconnection attempts")
                self.state.is_stopped = True
                self._notify_error(RetriesExhaustedError(url, self.state.retry_count, last_error))
                return

            self.state.retry_count += 1
            logger.info(f"Retry attempt {self.state.retry_count} of {self._policy.max_retries} in {delay:.1f}s")
            await self._sleep(delay)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error(f"Connection supervisor for {self._url} crashed: {exc!r}")
        if task is self._task:
            self.state.is_stopped = True
            self._connected = False
            self._notify_error(TransportError(f"Connection supervisor crashed: {exc}"))

    def _notify_open(self) -> None:
        for handler in list(self._open_handlers):
            try:
                handler()
            except Exception:
                logger.exception("Open handler failed")

    def _notify_event(self, sse: ServerSentEvent) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(sse)
            except Exception:
                logger.exception("Event handler failed")

    def _notify_error(self, error: AskStreamError) -> None:
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Error handler failed")

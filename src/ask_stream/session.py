"""Query session: the state machine driving one query from request to completion.

    IDLE -> SENDING -> AWAITING_FIRST_EVENT -> STREAMING -> TERMINATED
                  \\______________________________\\____-> FAILED

TERMINATED is reached on a ``complete`` event or on cancel(); FAILED when the
connection gives up reconnecting before ``complete`` was seen. Both are
absorbing: once there, no event touches the round again.
"""

from __future__ import annotations

import asyncio
import contextvars
from collections.abc import Callable
from enum import Enum

from .accumulator import PresentedEntry, RoundState
from .connection import BackoffPolicy, ConnectionManager, SleepFunc
from .correlator import SessionCorrelator
from .dispatcher import MessageDispatcher
from .exceptions import AskStreamError, SessionStateError
from .models import QueryRequest, ResultItem
from .observability import bind_query_context, clear_query_context, get_query_logger
from .renderer import BaseRenderer, Renderer
from .request import build_request_url
from .transport import StreamTransport

StateHandler = Callable[["SessionState", "SessionState"], None]


class SessionState(str, Enum):
    """Lifecycle of a query session."""

    IDLE = "idle"
    SENDING = "sending"
    AWAITING_FIRST_EVENT = "awaiting_first_event"
    STREAMING = "streaming"
    TERMINATED = "terminated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.TERMINATED, SessionState.FAILED)


class QuerySession:
    """Streams the answer to one QueryRequest into a renderer."""

    def __init__(
        self,
        request: QueryRequest,
        *,
        api_endpoint: str,
        transport: StreamTransport,
        renderer: Renderer | None = None,
        policy: BackoffPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
        dispatcher: MessageDispatcher | None = None,
        on_remember: Callable[[str], None] | None = None,
    ):
        """Initialize a session. Nothing is sent until start().

        Args:
            request: The query to stream
            api_endpoint: Streaming endpoint (request parameters are appended)
            transport: Transport used to open the event stream
            renderer: Consumer of annotations and ordered results
            policy: Reconnect schedule for the connection
            sleep: Awaitable used for backoff waits
            dispatcher: Event router (a fresh one by default)
            on_remember: Called with each item the server asks the client to remember
        """
        self.request = request
        self.api_endpoint = api_endpoint
        self.renderer: Renderer = renderer or BaseRenderer()
        self.dispatcher = dispatcher or MessageDispatcher()
        self.round = RoundState()
        self.state = SessionState.IDLE
        self.error: AskStreamError | None = None
        self.cancelled = False
        self.url: str | None = None

        self.connection = ConnectionManager(transport, policy=policy, sleep=sleep)
        self.correlator = SessionCorrelator(request.query_id, self.connection)
        self.correlator.on_raw_event(self._on_raw_event)
        self.correlator.on_open(self._on_open)
        self.correlator.on_error(self._on_connection_error)

        self._on_remember = on_remember
        self._state_handlers: list[StateHandler] = []
        self._finished = asyncio.Event()
        self._log = get_query_logger(__name__).bind(query_id=request.query_id)

    @property
    def query_id(self) -> str:
        return self.request.query_id

    @property
    def results(self) -> list[ResultItem]:
        """Accumulated results in their current order."""
        return list(self.round.results)

    @property
    def presented(self) -> list[PresentedEntry]:
        return list(self.round.presented)

    def on_state_change(self, handler: StateHandler) -> None:
        """Register a callback receiving (old_state, new_state) on each transition."""
        self._state_handlers.append(handler)

    # --- Lifecycle ---

    def start(self) -> str:
        """Send the query. Must be called from a running event loop.

        Returns:
            The streaming URL that was opened
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Session {self.query_id} already started (state: {self.state.value})")

        self.round = RoundState()
        self.url = build_request_url(self.api_endpoint, self.request)
        self._set_state(SessionState.SENDING)

        # The connection task inherits the query context without leaking it
        # into the caller's context.
        contextvars.copy_context().run(self._open_connection, self.url)
        return self.url

    def cancel(self) -> None:
        """Abandon the query: stop retries, close the stream, drop late events."""
        if self.state.is_terminal:
            return
        self.cancelled = True
        self.round.is_terminated = True
        self.correlator.stop()
        self._log.info("Session cancelled")
        self._set_state(SessionState.TERMINATED)
        self._finish()

    async def wait(self) -> SessionState:
        """Wait for the session to terminate or fail and the stream to be released."""
        await self._finished.wait()
        await self.connection.wait_closed()
        return self.state

    async def aclose(self) -> None:
        """Cancel if still running and release the connection."""
        self.cancel()
        await self.connection.aclose()

    # --- Called by the dispatcher ---

    def begin_round(self) -> None:
        """First event of the round: clear the placeholder and start a fresh buffer."""
        self.renderer.on_round_reset()
        self.round.begin()
        self._set_state(SessionState.STREAMING)

    def remember_item(self, item: str) -> None:
        if self._on_remember is not None:
            self._on_remember(item)

    def complete(self) -> None:
        """The server finished the round."""
        if self.state.is_terminal:
            return
        self.round.is_terminated = True
        self.correlator.stop()
        self._log.info("Session complete", results=len(self.round.results), results_sent=self.round.results_sent)
        self._set_state(SessionState.TERMINATED)
        self.renderer.on_terminal_state(SessionState.TERMINATED, self.round)
        self._finish()

    # --- Internals ---

    def _open_connection(self, url: str) -> None:
        bind_query_context(self.query_id)
        self._log.info("Sending query", url=url, generate_mode=self.request.generate_mode.value)
        self.correlator.start(url)

    def _on_open(self) -> None:
        if self.state is SessionState.SENDING:
            self._set_state(SessionState.AWAITING_FIRST_EVENT)

    def _on_raw_event(self, raw: str) -> None:
        if self.state.is_terminal:
            return
        self.dispatcher.dispatch(raw, self)

    def _on_connection_error(self, error: AskStreamError) -> None:
        if self.state.is_terminal:
            return
        self.error = error
        self.round.is_terminated = True
        self.correlator.invalidate()
        self._log.warning("Session failed", error=str(error))
        self._set_state(SessionState.FAILED)
        self.renderer.on_terminal_state(SessionState.FAILED, self.round)
        self._finish()

    def _finish(self) -> None:
        clear_query_context()
        self._finished.set()

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self.state
        if old_state is new_state or old_state.is_terminal:
            return
        self.state = new_state
        self._log.debug("Session state changed", old=old_state.value, new=new_state.value)
        for handler in list(self._state_handlers):
            handler(old_state, new_state)

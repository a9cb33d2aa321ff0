"""Chat client: one render target, its conversation history and its active query."""

from __future__ import annotations

import asyncio
import json
import logging
from functools import partial

from .config import AppSettings, get_settings
from .connection import BackoffPolicy, SleepFunc
from .models import ConversationMessage, GenerateMode, ResultListContent, TextContent
from .renderer import BaseRenderer, Renderer
from .request import build_query_request
from .session import QuerySession, SessionState
from .transport import HttpxTransport, StreamTransport

logger = logging.getLogger(__name__)


class ChatClient:
    """Caller-owned client context that runs at most one query session at a time.

    Starting a new query cancels the active one first, so two sessions never
    write to the same renderer.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        renderer: Renderer | None = None,
        transport: StreamTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.renderer: Renderer = renderer or BaseRenderer()
        self._transport = transport
        self._owns_transport = transport is None
        self._sleep = sleep

        self.messages: list[ConversationMessage] = []
        self.prev_turns: list[str] = []
        self.items_to_remember: list[str] = []
        self.active_session: QuerySession | None = None

    @property
    def transport(self) -> StreamTransport:
        if self._transport is None:
            self._transport = HttpxTransport(timeout=self.settings.connection.timeout)
        return self._transport

    @property
    def is_streaming(self) -> bool:
        return self.active_session is not None and not self.active_session.state.is_terminal

    def ask(
        self,
        query: str,
        *,
        site: str | None = None,
        generate_mode: GenerateMode | str | None = None,
        context_url: str | None = None,
    ) -> QuerySession | None:
        """Send a query, cancelling any session still running.

        Args:
            query: The user's question; blank queries are ignored
            site: Site override (defaults to the configured site)
            generate_mode: Mode override (defaults to the configured mode)
            context_url: Page context override

        Returns:
            The started session, or None for a blank query
        """
        text = query.strip()
        if not text:
            return None

        # A rejected request must leave the running session and history untouched
        client_settings = self.settings.client
        request = build_query_request(
            text,
            site=site or client_settings.site,
            generate_mode=generate_mode or client_settings.generate_mode,
            prev=self.prev_turns,
            items_to_remember=self.items_to_remember,
            context_url=context_url or client_settings.context_url,
        )

        self.cancel()
        self.messages.append(ConversationMessage(sender="user", content=TextContent(text=text)))
        session = QuerySession(
            request,
            api_endpoint=client_settings.api_endpoint,
            transport=self.transport,
            renderer=self.renderer,
            policy=BackoffPolicy.from_settings(self.settings.connection),
            sleep=self._sleep,
            on_remember=self.items_to_remember.append,
        )
        session.on_state_change(partial(self._on_session_state, session))
        self.active_session = session

        session.start()
        self.prev_turns.append(text)
        return session

    def cancel(self) -> None:
        """Cancel the active session, if any is still running."""
        if self.active_session is not None and not self.active_session.state.is_terminal:
            logger.info(f"Cancelling active query {self.active_session.query_id}")
            self.active_session.cancel()

    def clear_history(self) -> None:
        """Forget the conversation (prior turns are no longer sent)."""
        self.messages = []
        self.prev_turns = []

    def reset_chat_state(self) -> None:
        """Cancel any query and forget history and remembered items."""
        self.cancel()
        self.clear_history()
        self.items_to_remember.clear()

    def debug_dump(self) -> str:
        """Current round's results as indented JSON."""
        items = self.active_session.results if self.active_session else []
        return json.dumps([item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items], indent=2)

    async def aclose(self) -> None:
        """Cancel the active session and release transport resources."""
        if self.active_session is not None:
            await self.active_session.aclose()
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _on_session_state(self, session: QuerySession, old_state: SessionState, new_state: SessionState) -> None:
        if new_state is SessionState.TERMINATED and not session.cancelled:
            content = ResultListContent(items=tuple(session.round.results))
            self.messages.append(ConversationMessage(sender="assistant", content=content))

"""Pytest configuration and shared fakes for ask-stream tests."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest

from ask_stream.config import get_settings
from ask_stream.exceptions import TransportError
from ask_stream.models import QueryRequest
from ask_stream.renderer import BaseRenderer
from ask_stream.session import QuerySession
from ask_stream.sse import ServerSentEvent

_END = object()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


class FakeConnection:
    """One scripted stream. Tests push payloads, end it or break it at will."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, payload: dict[str, Any] | str) -> "FakeConnection":
        self.queue.put_nowait(json.dumps(payload) if isinstance(payload, dict) else payload)
        return self

    def end(self) -> "FakeConnection":
        """Peer closes the stream."""
        self.queue.put_nowait(_END)
        return self

    def fail(self, message: str = "connection reset by peer") -> "FakeConnection":
        """Read fails mid-stream."""
        self.queue.put_nowait(TransportError(message))
        return self

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        while True:
            item = await self.queue.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield ServerSentEvent(data=item)


class FakeTransport:
    """StreamTransport that hands out scripted connections in order.

    When the script runs out every further connect is refused.
    """

    def __init__(self) -> None:
        self.script: list[FakeConnection | BaseException] = []
        self.urls: list[str] = []
        self.open_count = 0
        self.max_open = 0

    def add(self, *payloads: dict[str, Any] | str) -> FakeConnection:
        conn = FakeConnection()
        for payload in payloads:
            conn.push(payload)
        self.script.append(conn)
        return conn

    def refuse(self, count: int = 1, message: str = "connection refused") -> None:
        for _ in range(count):
            self.script.append(TransportError(message))

    @asynccontextmanager
    async def connect(self, url: str) -> AsyncIterator[AsyncIterator[ServerSentEvent]]:
        self.urls.append(url)
        await asyncio.sleep(0)
        if not self.script:
            raise TransportError("connection refused")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step

        self.open_count += 1
        self.max_open = max(self.max_open, self.open_count)
        try:
            yield step.events()
        finally:
            self.open_count -= 1


class RecordingSleep:
    """Backoff sleep that records delays instead of waiting them out."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)


class RecordingRenderer(BaseRenderer):
    """Keeps every renderer callback as (name, payload) in call order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def of(self, name: str) -> list[Any]:
        return [payload for call_name, payload in self.calls if call_name == name]

    def on_round_reset(self) -> None:
        self.calls.append(("round_reset", None))

    def on_annotation(self, annotation):
        self.calls.append(("annotation", annotation))

    def on_results_appended(self, items):
        self.calls.append(("appended", list(items)))

    def on_results_reordered(self, presented):
        self.calls.append(("reordered", list(presented)))

    def on_terminal_state(self, state, round_state):
        self.calls.append(("terminal", state))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def make_session(transport, renderer, recording_sleep) -> Callable[..., QuerySession]:
    """Factory for sessions wired to the shared fake transport and renderer."""

    def _make(query_id: str = "q1", query: str = "spicy noodles", **kwargs: Any) -> QuerySession:
        request = QueryRequest(query_id=query_id, query=query, generate_mode=kwargs.pop("generate_mode", "list"))
        kwargs.setdefault("api_endpoint", "http://test.local/ask")
        kwargs.setdefault("transport", transport)
        kwargs.setdefault("renderer", renderer)
        kwargs.setdefault("sleep", recording_sleep)
        return QuerySession(request, **kwargs)

    return _make


@pytest.fixture
def settle() -> Callable[..., Any]:
    """Run the event loop until predicate() holds (or a bounded number of turns passed)."""

    async def _settle(predicate: Callable[[], bool] = lambda: False, turns: int = 100) -> bool:
        for _ in range(turns):
            if predicate():
                return True
            await asyncio.sleep(0)
        return predicate()

    return _settle


@pytest.fixture
def clean_settings_env(monkeypatch, tmp_path):
    """Isolate settings from the developer's environment and config file."""
    import os

    for var in list(os.environ):
        if var.startswith("ASK_STREAM_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ASK_STREAM_CONFIG_FILE", str(tmp_path / "config.json"))
    get_settings.cache_clear()
    yield tmp_path / "config.json"
    get_settings.cache_clear()

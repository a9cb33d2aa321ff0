"""Server-Sent Events framing over a stream of text lines.

httpx hands us decoded lines; this module turns them into events following
the ``text/event-stream`` rules: fields are ``event``, ``data``, ``id`` and
``retry``, lines starting with ``:`` are comments and a blank line ends an
event. Multiple ``data`` lines are joined with a newline.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass


@dataclass(frozen=True)
class ServerSentEvent:
    """A single dispatched SSE event."""

    data: str
    event: str = "message"
    id: str | None = None
    retry: int | None = None


class SSEDecoder:
    """Incremental line-by-line SSE decoder."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_event_id: str | None = None
        self._retry: int | None = None

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    def decode(self, line: str) -> ServerSentEvent | None:
        """Feed one line (without its terminator). Returns an event on a blank line."""
        line = line.rstrip("\r\n")

        if not line:
            return self._flush()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            # ids containing NUL are ignored
            if "\0" not in value:
                self._last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _flush(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = ""
            return None

        sse = ServerSentEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._last_event_id,
            retry=self._retry,
        )
        self._event = ""
        self._data = []
        self._retry = None
        return sse


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    """Yield events decoded from an async iterable of lines."""
    decoder = SSEDecoder()
    async for line in lines:
        sse = decoder.decode(line)
        if sse is not None:
            yield sse
    # A stream ending without a trailing blank line drops the partial event.

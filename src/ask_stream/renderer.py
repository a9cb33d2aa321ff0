"""Renderer contract: the consumer of a session's decoded output.

Renderers are called synchronously from the event loop while a session is
processing an event. They may read session and round state but must not call
back into session mutation methods from these callbacks.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from .models import Annotation, ResultItem

if TYPE_CHECKING:
    from .accumulator import PresentedEntry, RoundState
    from .session import SessionState

NO_RESULTS_MESSAGE = "I couldn't find any results that are relevant to your query."
NO_MORE_RESULTS_MESSAGE = "I couldn't find any more results that are relevant to your query."


class Renderer(Protocol):
    def on_round_reset(self) -> None:
        """The round's content area should be cleared (placeholder or previous content)."""
        ...

    def on_annotation(self, annotation: Annotation) -> None:
        """An informational message arrived."""
        ...

    def on_results_appended(self, items: Sequence[ResultItem]) -> None:
        """Items arrived and were appended in arrival order."""
        ...

    def on_results_reordered(self, presented: Sequence[PresentedEntry]) -> None:
        """Full presented content after a resort: slotted annotations, then results by score."""
        ...

    def on_terminal_state(self, state: SessionState, round_state: RoundState) -> None:
        """The session terminated or failed. Called once."""
        ...


class BaseRenderer:
    """Renderer that ignores everything. Subclass and override what you need."""

    def on_round_reset(self) -> None:
        pass

    def on_annotation(self, annotation: Annotation) -> None:
        pass

    def on_results_appended(self, items: Sequence[ResultItem]) -> None:
        pass

    def on_results_reordered(self, presented: Sequence[PresentedEntry]) -> None:
        pass

    def on_terminal_state(self, state: SessionState, round_state: RoundState) -> None:
        pass


def insufficient_results_message(round_state: RoundState, *, had_earlier_results: bool = False) -> str | None:
    """Text to show when a round ends without results, else None.

    Args:
        round_state: The finished round
        had_earlier_results: Results were shown before (e.g. by an earlier round), so say "any more"
    """
    if round_state.results:
        return None
    return NO_MORE_RESULTS_MESSAGE if had_earlier_results else NO_RESULTS_MESSAGE

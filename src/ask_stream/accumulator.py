"""Per-round accumulation of results and annotations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TypeAlias

from .models import Annotation, ResultItem

PresentedEntry: TypeAlias = Annotation | ResultItem


@dataclass
class RoundState:
    """Mutable state of one round (one query from request to completion)."""

    is_first_event_pending: bool = True
    results: list[ResultItem] = field(default_factory=list)
    remembered: Annotation | None = None
    sources: Annotation | None = None
    summary: Annotation | None = None
    decontextualized_query: str | None = None
    results_sent: int = 0
    is_terminated: bool = False
    presented: list[PresentedEntry] = field(default_factory=list)

    def begin(self) -> None:
        """Open a fresh results buffer and forget prior annotations."""
        self.is_first_event_pending = False
        self.results = []
        self.remembered = None
        self.sources = None
        self.summary = None
        self.presented = []

    @property
    def annotations(self) -> list[Annotation]:
        """Slotted annotations in presentation order, unset slots omitted."""
        return [a for a in (self.remembered, self.sources, self.summary) if a is not None]


class ResultAccumulator:
    """Collects result items for a round and keeps their presented order."""

    def append(self, state: RoundState, items: Iterable[ResultItem]) -> list[ResultItem]:
        """Append items in arrival order. No deduplication is done."""
        added = list(items)
        state.results.extend(added)
        state.presented.extend(added)
        return added

    def publish(self, state: RoundState, annotation: Annotation) -> None:
        """Add an annotation to the presented content at its arrival position."""
        state.presented.append(annotation)

    def clear_presented(self, state: RoundState) -> None:
        """Drop everything presented so far. Accumulated results are kept."""
        state.presented = []

    def resort(self, state: RoundState) -> list[PresentedEntry] | None:
        """Order results by score, best first, and rebuild the presented content.

        Ties keep their current relative order. Returns the new presented list,
        or None when there are no results yet.
        """
        if not state.results:
            return None

        # sorted() is stable with reverse=True, so equal scores keep arrival order
        state.results = sorted(state.results, key=lambda item: item.score, reverse=True)
        state.presented = [*state.annotations, *state.results]
        return list(state.presented)

    def snapshot(self, state: RoundState) -> list[PresentedEntry]:
        """Presented content as it stands, without resorting."""
        return list(state.presented)

"""Decode raw event payloads and route them by message kind."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from pydantic import ValidationError

from .accumulator import ResultAccumulator
from .models import (
    Annotation,
    AnnotationKind,
    AskingSitesEvent,
    AskUserEvent,
    CompleteEvent,
    IntermediateMessageEvent,
    ItemDetailsEvent,
    NlwsEvent,
    QueryAnalysisEvent,
    RememberEvent,
    ResultBatchEvent,
    SiteIrrelevantEvent,
    StreamEvent,
    SummaryEvent,
    stream_event_adapter,
)

if TYPE_CHECKING:
    from .session import QuerySession

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Classifies decoded events and applies each one to its session exactly once."""

    def __init__(self, accumulator: ResultAccumulator | None = None):
        self.accumulator = accumulator or ResultAccumulator()

    def decode(self, raw: str | bytes) -> StreamEvent | None:
        """Decode a payload into a StreamEvent, or None if it is not one.

        Malformed JSON, non-object payloads and unknown message kinds are all
        dropped here without surfacing an error.
        """
        try:
            return stream_event_adapter.validate_json(raw)
        except ValidationError as e:
            logger.debug(f"Dropping undecodable event payload ({e.error_count()} errors): {str(raw)[:200]}")
            return None

    def dispatch(self, raw: str | bytes, session: QuerySession) -> StreamEvent | None:
        """Decode raw and apply it to session. Returns the event if it was applied."""
        event = self.decode(raw)
        if event is None:
            return None

        if not session.correlator.matches(event.query_id):
            logger.debug(f"Query ID mismatch ({event.query_id} != {session.query_id}), ignoring message")
            return None

        round_state = session.round
        if round_state.is_terminated:
            logger.debug(f"Ignoring {event.message_type} after round termination")
            return None

        if round_state.is_first_event_pending:
            session.begin_round()

        self._handle(event, session)
        return event

    def _handle(self, event: StreamEvent, session: QuerySession) -> None:
        round_state = session.round
        renderer = session.renderer

        match event:
            case QueryAnalysisEvent():
                if event.item_to_remember:
                    session.remember_item(event.item_to_remember)
                round_state.decontextualized_query = event.decontextualized_query
                if event.item_to_remember:
                    self._remember(session, Annotation(kind=AnnotationKind.REMEMBER, text=event.item_to_remember))

            case RememberEvent():
                if event.message:
                    self._remember(session, Annotation(kind=AnnotationKind.REMEMBER, text=event.message))

            case AskingSitesEvent():
                round_state.sources = Annotation(kind=AnnotationKind.SOURCES, text=event.message)
                self._publish(session, round_state.sources)

            case SiteIrrelevantEvent():
                self._publish(session, Annotation(kind=AnnotationKind.SITE_IRRELEVANT, text=event.message))

            case AskUserEvent():
                self._publish(session, Annotation(kind=AnnotationKind.ASK_USER, text=event.message))

            case ItemDetailsEvent():
                if event.message:
                    self._remember(session, Annotation(kind=AnnotationKind.ITEM_DETAILS, text=event.message))

            case ResultBatchEvent():
                added = self.accumulator.append(round_state, event.results)
                round_state.results_sent += len(added)
                renderer.on_results_appended(added)
                self._resort(session)

            case IntermediateMessageEvent():
                self._publish(session, Annotation(kind=AnnotationKind.INTERMEDIATE, text=event.message))

            case SummaryEvent():
                round_state.summary = Annotation(kind=AnnotationKind.SUMMARY, text=event.message)
                self._resort(session)

            case NlwsEvent():
                self.accumulator.clear_presented(round_state)
                renderer.on_round_reset()
                if event.answer:
                    self._remember(session, Annotation(kind=AnnotationKind.ITEM_DETAILS, text=event.answer))
                added = self.accumulator.append(round_state, event.items)
                renderer.on_results_appended(added)

            case CompleteEvent():
                self._resort(session)
                session.complete()

            case _:
                assert_never(event)

    def _publish(self, session: QuerySession, annotation: Annotation) -> None:
        self.accumulator.publish(session.round, annotation)
        session.renderer.on_annotation(annotation)

    def _remember(self, session: QuerySession, annotation: Annotation) -> None:
        # remember, query_analysis, item_details and nlws all share one slot
        session.round.remembered = annotation
        self._publish(session, annotation)

    def _resort(self, session: QuerySession) -> None:
        presented = self.accumulator.resort(session.round)
        if presented is not None:
            session.renderer.on_results_reordered(presented)

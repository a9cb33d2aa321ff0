"""Tests for round accumulation and score resorting."""

import pytest

from ask_stream.accumulator import ResultAccumulator, RoundState
from ask_stream.models import Annotation, AnnotationKind, ResultItem


def item(name: str, score: float) -> ResultItem:
    return ResultItem(url=f"https://example.com/{name}", name=name, score=score)


@pytest.fixture
def accumulator() -> ResultAccumulator:
    return ResultAccumulator()


def test_resort_empty_is_noop(accumulator):
    state = RoundState()
    state.summary = Annotation(kind=AnnotationKind.SUMMARY, text="nothing yet")
    state.presented = [state.summary]

    assert accumulator.resort(state) is None
    assert state.presented == [state.summary]


def test_resort_orders_by_score_descending(accumulator):
    state = RoundState()
    accumulator.append(state, [item("low", 0.1), item("high", 0.9), item("mid", 0.5)])

    accumulator.resort(state)

    assert [r.name for r in state.results] == ["high", "mid", "low"]


def test_resort_is_stable_for_ties(accumulator):
    state = RoundState()
    accumulator.append(state, [item("a", 0.5), item("b", 0.7), item("c", 0.5), item("d", 0.5)])

    accumulator.resort(state)

    assert [r.name for r in state.results] == ["b", "a", "c", "d"]


def test_resort_is_idempotent(accumulator):
    state = RoundState()
    accumulator.append(state, [item("a", 0.3), item("b", 0.3), item("c", 0.8)])

    first = accumulator.resort(state)
    second = accumulator.resort(state)

    assert first == second
    assert [r.name for r in state.results] == ["c", "a", "b"]


def test_presented_order_is_slots_then_results(accumulator):
    state = RoundState()
    remembered = Annotation(kind=AnnotationKind.REMEMBER, text="vegetarian")
    sources = Annotation(kind=AnnotationKind.SOURCES, text="Asking seriouseats")
    summary = Annotation(kind=AnnotationKind.SUMMARY, text="Three good options")
    state.summary = summary
    state.remembered = remembered
    state.sources = sources
    accumulator.publish(state, Annotation(kind=AnnotationKind.INTERMEDIATE, text="thinking"))
    accumulator.append(state, [item("x", 0.2), item("y", 0.4)])

    presented = accumulator.resort(state)

    assert presented == [remembered, sources, summary, state.results[0], state.results[1]]
    assert [r.name for r in state.results] == ["y", "x"]


def test_unset_slots_are_omitted(accumulator):
    state = RoundState()
    state.sources = Annotation(kind=AnnotationKind.SOURCES, text="Asking 3 sites")
    accumulator.append(state, [item("x", 0.2)])

    assert accumulator.resort(state) == [state.sources, state.results[0]]


@pytest.mark.parametrize(("batches", "per_batch"), [(0, 3), (1, 1), (4, 3), (7, 5)])
def test_no_items_dropped(accumulator, batches, per_batch):
    state = RoundState()
    for b in range(batches):
        accumulator.append(state, [item(f"{b}-{i}", (b * 7 + i * 3) % 10 / 10) for i in range(per_batch)])

    accumulator.resort(state)

    assert len(state.results) == batches * per_batch
    scores = [r.score for r in state.results]
    assert scores == sorted(scores, reverse=True)


def test_duplicates_are_kept(accumulator):
    state = RoundState()
    duplicate = item("same", 0.5)
    accumulator.append(state, [duplicate])
    accumulator.append(state, [duplicate])

    assert len(state.results) == 2


def test_begin_clears_round(accumulator):
    state = RoundState()
    state.remembered = Annotation(kind=AnnotationKind.REMEMBER, text="x")
    state.summary = Annotation(kind=AnnotationKind.SUMMARY, text="y")
    accumulator.append(state, [item("a", 1.0)])

    state.begin()

    assert not state.is_first_event_pending
    assert state.results == []
    assert state.presented == []
    assert state.annotations == []


def test_clear_presented_keeps_results(accumulator):
    state = RoundState()
    accumulator.append(state, [item("a", 1.0)])
    accumulator.clear_presented(state)

    assert accumulator.snapshot(state) == []
    assert len(state.results) == 1

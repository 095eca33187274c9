from __future__ import annotations

import threading
import time

import pytest

from tickstream.runtime.emitter import EmitterState
from tickstream.runtime.frames import decode_update, parse_frames
from tickstream.runtime.producer import ProducerKind
from tickstream.runtime.recipes import DEFAULT_RECIPES, Recipe, RecipeEntry
from tickstream.runtime.session import CancellationToken, Session


def _open(recipe, sink, clock, pace, deps) -> Session:
    session = Session.open(recipe, sink, clock=clock, deps=deps)
    pace.add_participant(session)
    return session


def test_virtual_350ms_yields_three_timestamp_frames(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["timestamp"], sink, clock, pace, deps)
    clock.advance(0.35)
    pace.run_once()

    assert sink.event_types() == ["timestamp"] * 3
    assert session.frames_written() == 3


def test_stepping_the_pace_gives_the_same_frames(sink, clock, pace, deps):
    _open(DEFAULT_RECIPES["timestamp"], sink, clock, pace, deps)
    pace.run_once()
    for _ in range(7):
        clock.advance(0.05)
        pace.run_once()
    assert len(sink.frames) == 3


def test_combined_closed_immediately_emits_one_template(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["combined"], sink, clock, pace, deps)
    assert session.close(reason="client-disconnect") is True

    assert sink.event_types() == ["template"]
    assert sink.closed
    assert all(e.state is EmitterState.CANCELLED for e in session.emitters)

    clock.advance(5.0)
    pace.run_once()
    assert len(sink.frames) == 1


def test_combined_interleaves_by_due_time_then_recipe_order(sink, clock, pace, deps):
    _open(DEFAULT_RECIPES["combined"], sink, clock, pace, deps)
    clock.advance(1.0)
    pace.run_once()

    assert sink.event_types() == (
        ["template"]
        + ["timestamp"] * 5
        + ["update"]
        + ["timestamp"] * 2
        + ["update"]
        + ["timestamp"] * 3
        + ["console", "update"]
    )
    updates = [decode_update(f) for f in parse_frames("".join(sink.frames)) if f.event_type == "update"]
    assert [u["id"] for u in updates] == ["func-name", "member-name", "func-name"]


@pytest.mark.parametrize(
    "kinds",
    [
        (ProducerKind.TIMESTAMP, ProducerKind.CONSOLE),
        (ProducerKind.CONSOLE, ProducerKind.TIMESTAMP),
    ],
)
def test_coincident_ticks_fire_in_recipe_order(kinds, sink, clock, pace, deps):
    recipe = Recipe("tie", tuple(RecipeEntry(kind, 100) for kind in kinds))
    _open(recipe, sink, clock, pace, deps)
    clock.advance(0.1)
    pace.run_once()
    assert sink.event_types() == [kind.value for kind in kinds]


def test_frames_are_whole_and_well_formed(sink, clock, pace, deps):
    _open(DEFAULT_RECIPES["combined"], sink, clock, pace, deps)
    for _ in range(40):
        clock.advance(0.05)
        pace.run_once()
    for frame in sink.frames:
        assert frame.startswith("event:")
        assert frame.endswith("\n\n") and not frame.endswith("\n\n\n")
    assert len(parse_frames("".join(sink.frames))) == len(sink.frames)


def test_write_failure_tears_down_whole_session(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["combined"], sink, clock, pace, deps)
    sink.fail_writes = True
    clock.advance(0.1)
    pace.run_once()

    assert session.closed
    assert session.close_reason == "write-failed"
    assert sink.close_calls == 1
    assert all(e.cancelled for e in session.emitters)


def test_double_close_is_a_no_op(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["panel"], sink, clock, pace, deps)
    calls = []
    session.add_close_callback(calls.append)

    assert session.close() is True
    assert session.close() is False
    assert sink.close_calls == 1
    assert calls == [session]


def test_close_callback_added_after_close_runs_immediately(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["timestamp"], sink, clock, pace, deps)
    session.close()
    calls = []
    session.add_close_callback(calls.append)
    assert calls == [session]


def test_shared_token_cancellation_closes_session(sink, clock, pace, deps):
    token = CancellationToken()
    session = Session.open(DEFAULT_RECIPES["console"], sink, clock=clock, deps=deps, token=token)
    assert token.cancel("client-disconnect") is True
    assert session.closed
    assert session.close_reason == "client-disconnect"
    assert session.wait_closed(timeout=0)


def test_failing_emitter_cancel_does_not_block_teardown(sink, clock, pace, deps, monkeypatch):
    session = _open(DEFAULT_RECIPES["combined"], sink, clock, pace, deps)
    broken = session.emitters[0]

    def boom() -> bool:
        raise RuntimeError("cancel failed")

    monkeypatch.setattr(broken, "cancel", boom)
    session.close()

    assert session.closed
    assert sink.close_calls == 1
    assert all(e.cancelled for e in session.emitters[1:])


def test_token_callbacks_run_once():
    token = CancellationToken()
    reasons = []
    token.on_cancel(reasons.append)
    token.cancel("first")
    token.cancel("second")
    token.on_cancel(reasons.append)
    assert reasons == ["first", "first"]
    assert token.reason == "first"
    assert token.cancelled_at is not None


class GatedSink:
    """Sink whose writes block until released, to hold a tick mid-write."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.log: list[str] = []
        self.closed = False

    def write(self, frame: str) -> None:
        self.entered.set()
        self.release.wait(timeout=5.0)
        self.log.append("write")

    def close(self) -> None:
        self.closed = True


def test_close_during_in_flight_tick_leaves_no_later_writes(clock, pace, deps):
    sink = GatedSink()
    session = _open(DEFAULT_RECIPES["timestamp"], sink, clock, pace, deps)
    clock.advance(0.35)

    pacer = threading.Thread(target=pace.run_once)
    pacer.start()
    assert sink.entered.wait(timeout=2.0)

    def close_and_log() -> None:
        session.close(reason="client-disconnect")
        sink.log.append("close-returned")

    closer = threading.Thread(target=close_and_log)
    closer.start()
    time.sleep(0.05)
    # close() waits for the write already in progress.
    assert closer.is_alive()

    sink.release.set()
    pacer.join(timeout=2.0)
    closer.join(timeout=2.0)

    # Three ticks were due, but only the in-flight one was written.
    assert sink.log == ["write", "close-returned"]
    assert sink.closed
    clock.advance(1.0)
    pace.run_once()
    assert sink.log == ["write", "close-returned"]


def test_every_close_returns_after_teardown(sink, clock, pace, deps, monkeypatch):
    session = _open(DEFAULT_RECIPES["panel"], sink, clock, pace, deps)
    emitter = session.emitters[0]
    original_cancel = emitter.cancel
    entered, release = threading.Event(), threading.Event()

    def slow_cancel() -> bool:
        entered.set()
        release.wait(timeout=5.0)
        return original_cancel()

    monkeypatch.setattr(emitter, "cancel", slow_cancel)
    results: dict[str, tuple[bool, bool]] = {}

    def close_as(name: str) -> None:
        returned = session.close()
        results[name] = (returned, session.closed)

    first = threading.Thread(target=close_as, args=("first",))
    first.start()
    assert entered.wait(timeout=2.0)
    second = threading.Thread(target=close_as, args=("second",))
    second.start()
    time.sleep(0.05)
    assert second.is_alive()

    release.set()
    first.join(timeout=2.0)
    second.join(timeout=2.0)

    assert results == {"first": (True, True), "second": (False, True)}
    assert sink.close_calls == 1


def test_close_from_a_close_callback_does_not_block(sink, clock, pace, deps):
    session = _open(DEFAULT_RECIPES["console"], sink, clock, pace, deps)
    nested = []
    session.add_close_callback(lambda s: nested.append(s.close()))
    assert session.close() is True
    assert nested == [False]

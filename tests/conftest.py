"""
Global test configuration for tickstream.

This module provides global pytest configuration and fixtures shared by the
runtime, web and CLI tests.
"""

from __future__ import annotations

import random
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from tickstream.infra.exceptions import SinkClosedError
from tickstream.runtime.clock import FixedWallClock, SteppedMasterClock
from tickstream.runtime.pace import PaceController
from tickstream.runtime.recipes import ProducerDeps


class ScriptedSentences:
    """SentenceSource returning canned text; raises once ``fail`` is set."""

    def __init__(self, sentences: list[str] | None = None, words: list[str] | None = None) -> None:
        self.sentences = list(sentences or ["Lorem ipsum dolor sit amet."])
        self.word_pool = list(words or ["alpha", "beta", "gamma", "delta"])
        self.fail: Exception | None = None
        self.sentence_calls = 0
        self.word_calls = 0

    def sentence(self) -> str:
        if self.fail is not None:
            raise self.fail
        value = self.sentences[self.sentence_calls % len(self.sentences)]
        self.sentence_calls += 1
        return value

    def words(self, count: int) -> list[str]:
        if self.fail is not None:
            raise self.fail
        self.word_calls += 1
        return [self.word_pool[i % len(self.word_pool)] for i in range(count)]


class RecordingSink:
    """FrameSink keeping every written frame in memory."""

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.close_calls = 0
        self.fail_writes = False
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkClosedError("sink is closed")
            if self.fail_writes:
                raise SinkClosedError("client went away")
            self.frames.append(frame)

    def close(self) -> None:
        with self._lock:
            self.close_calls += 1
            self._closed = True

    def event_types(self) -> list[str]:
        return [frame.split("\n", 1)[0].removeprefix("event:") for frame in self.frames]


FIXED_INSTANT = datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)


@pytest.fixture
def sentences() -> ScriptedSentences:
    return ScriptedSentences()


@pytest.fixture
def wall_clock() -> FixedWallClock:
    return FixedWallClock(FIXED_INSTANT)


@pytest.fixture
def deps(sentences, wall_clock) -> ProducerDeps:
    return ProducerDeps(sentences=sentences, wall_clock=wall_clock, rng=random.Random(7))


@pytest.fixture
def clock() -> SteppedMasterClock:
    return SteppedMasterClock()


@pytest.fixture
def pace(clock) -> PaceController:
    return PaceController(clock=clock, target_hz=50.0, sleep_fn=None)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sink_factory():
    """Build additional RecordingSinks inside a test."""
    return RecordingSink

"""Shared timer for every live session.

One `PaceController` runs on one thread and calls ``on_paced_tick(t_now, dt)``
on each registered participant, in registration order, roughly ``target_hz``
times a second. ``t_now`` is station time from a :class:`MasterClock`;
emitters compare it against their own due times, so the pace rate only sets
the timer resolution, not the emission periods.

Two modes:

- real time (``sleep_fn`` set): :meth:`run_forever` sleeps between frames and
  corrects for drift against ``time.perf_counter``;
- stepped (``sleep_fn=None``): nothing sleeps; tests advance a stepped clock
  and call :meth:`run_once` themselves.

``dt`` handed to participants is never negative and is capped at
``max_frame_multiplier`` frames.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import Event, Lock
from typing import Callable, Protocol, runtime_checkable

from .clock import MasterClock

SleepFn = Callable[[float], None]

_logger = logging.getLogger(__name__)


@runtime_checkable
class PaceParticipant(Protocol):
    """Anything the pace thread can drive (in practice, a Session)."""

    def on_paced_tick(self, t_now: float, dt: float) -> None:
        """Handle one timer frame at station time ``t_now``."""


@dataclass
class PaceController:
    """Tick registered participants from a single timer thread.

    Parameters
    ----------
    clock:
        Source of station time.
    target_hz:
        Timer frames per second. Must be positive.
    sleep_fn:
        Sleep used by :meth:`run_forever`; ``None`` selects stepped mode.
    max_frame_multiplier:
        Upper bound for ``dt``, in frames.
    """

    clock: MasterClock
    target_hz: float = 50.0
    sleep_fn: SleepFn | None = time.sleep
    max_frame_multiplier: float = 3.0
    frames_run: int = field(default=0, init=False)
    _participants: dict[int, PaceParticipant] = field(default_factory=dict, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)
    _stop_event: Event = field(default_factory=Event, init=False)
    _last_time: float | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.target_hz <= 0.0:
            raise ValueError("target_hz must be greater than zero")
        if self.max_frame_multiplier <= 0.0:
            raise ValueError("max_frame_multiplier must be greater than zero")
        self._frame_interval = 1.0 / self.target_hz

    @property
    def frame_interval(self) -> float:
        return self._frame_interval

    # Participants ---------------------------------------------------------
    def add_participant(self, participant: PaceParticipant) -> None:
        # Keyed by identity: sessions are not hashable by value.
        with self._lock:
            self._participants[id(participant)] = participant

    def remove_participant(self, participant: PaceParticipant) -> None:
        with self._lock:
            self._participants.pop(id(participant), None)

    def participant_count(self) -> int:
        with self._lock:
            return len(self._participants)

    # Thread body ----------------------------------------------------------
    def run_forever(self) -> None:
        """Run frames until :meth:`stop` is called."""
        self._stop_event.clear()
        self._last_time = None
        deadline = time.perf_counter()

        while not self.is_stopping():
            self.run_once()
            if self.sleep_fn is None:
                # Stepped mode: the caller drives frames, just wait for stop.
                self._stop_event.wait(self._frame_interval)
                continue
            deadline = self._sleep_until_next_frame(deadline)

    def _sleep_until_next_frame(self, deadline: float) -> float:
        deadline += self._frame_interval
        remaining = deadline - time.perf_counter()
        if remaining <= 0:
            # Overran the frame; restart the schedule from now.
            return time.perf_counter()
        assert self.sleep_fn is not None
        self.sleep_fn(remaining)
        return deadline

    def stop(self) -> None:
        self._stop_event.set()

    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    # One frame ------------------------------------------------------------
    def run_once(self) -> bool:
        """Run one frame. Returns True if any participant was ticked.

        A frame where station time has not moved since the previous one is
        skipped.
        """
        now = self.clock.now()
        if self._last_time is None:
            dt = self._frame_interval
        else:
            dt = now - self._last_time
            if dt <= 0.0:
                return False
        dt = min(dt, self._frame_interval * self.max_frame_multiplier)
        self._last_time = now
        self.frames_run += 1

        with self._lock:
            participants = list(self._participants.values())
        for participant in participants:
            try:
                participant.on_paced_tick(now, dt)
            except Exception:
                _logger.exception("Pace participant %r failed during tick", participant)
        return bool(participants)

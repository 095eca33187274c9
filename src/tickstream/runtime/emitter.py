"""
Scheduled emitter: one producer bound to a period and a sink.

States::

    PENDING --start()--> ACTIVE --cancel()--> CANCELLED
    PENDING --cancel()-------------------->  CANCELLED

Ticks are driven from outside (the session, on the pace thread). The state
check, the producer call and the sink write happen under one lock, and
``cancel()`` takes the same lock, so once ``cancel()`` returns no further
write can happen even if a tick was already in flight.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from ..infra.exceptions import SinkClosedError
from .frames import encode_frame
from .producer.base import Producer
from .sink import FrameSink

_logger = logging.getLogger(__name__)

# Station-time slack when comparing due times (float accumulation).
DUE_EPSILON_S = 1e-6

# A tick this many periods late is collapsed into one write.
MAX_CATCH_UP_TICKS = 10


class EmitterState(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


WriteFailureHandler = Callable[["ScheduledEmitter", SinkClosedError], None]


class ScheduledEmitter:
    """Fires ``producer`` every ``period_ms`` into ``sink`` until cancelled."""

    def __init__(
        self,
        producer: Producer,
        period_ms: int,
        sink: FrameSink,
        *,
        fire_immediately: bool = False,
        on_write_failure: Optional[WriteFailureHandler] = None,
        name: str | None = None,
    ) -> None:
        if period_ms <= 0:
            raise ValueError("period_ms must be greater than zero")
        self.producer = producer
        self.period_ms = period_ms
        self.fire_immediately = fire_immediately
        self.name = name or producer.event_type
        self._period_s = period_ms / 1000.0
        self._sink = sink
        self._on_write_failure = on_write_failure
        self._lock = threading.Lock()
        self._state = EmitterState.PENDING
        self._next_due: float | None = None
        self.frames_written = 0
        self.resync_count = 0

    # State --------------------------------------------------------------
    @property
    def state(self) -> EmitterState:
        with self._lock:
            return self._state

    @property
    def cancelled(self) -> bool:
        return self.state is EmitterState.CANCELLED

    def due_at(self) -> float | None:
        """Station time of the next tick, or None when not active."""
        with self._lock:
            if self._state is not EmitterState.ACTIVE:
                return None
            return self._next_due

    # Transitions --------------------------------------------------------
    def start(self, t_now: float) -> bool:
        """
        Arm the emitter at station time ``t_now``.

        Fires once right away when ``fire_immediately`` is set. Returns False
        if the emitter was not pending (already started or cancelled).
        """
        failure: SinkClosedError | None = None
        with self._lock:
            if self._state is not EmitterState.PENDING:
                return False
            self._state = EmitterState.ACTIVE
            self._next_due = t_now + self._period_s
            if self.fire_immediately:
                failure = self._emit_locked()
        if failure is not None:
            self._report_failure(failure)
        return True

    def cancel(self) -> bool:
        """Disarm the emitter. Idempotent; returns True only for the call that cancelled it."""
        with self._lock:
            if self._state is EmitterState.CANCELLED:
                return False
            self._state = EmitterState.CANCELLED
            self._next_due = None
            return True

    # Ticking ------------------------------------------------------------
    def tick(self, t_now: float) -> bool:
        """
        Fire one tick if one is due at ``t_now``.

        Returns True when a frame was written. A tick that arrives after
        cancellation is a no-op.
        """
        failure: SinkClosedError | None = None
        with self._lock:
            if self._state is not EmitterState.ACTIVE or self._next_due is None:
                return False
            if self._next_due > t_now + DUE_EPSILON_S:
                return False
            behind = int((t_now - self._next_due + DUE_EPSILON_S) / self._period_s)
            if behind >= MAX_CATCH_UP_TICKS:
                # Keep the phase, drop the backlog.
                self._next_due += behind * self._period_s
                self.resync_count += 1
                _logger.warning(
                    "Emitter %s fell %d ticks behind; skipping to current tick",
                    self.name,
                    behind,
                )
            self._next_due += self._period_s
            failure = self._emit_locked()
            written = failure is None
        if failure is not None:
            self._report_failure(failure)
        return written

    def _emit_locked(self) -> SinkClosedError | None:
        payload = self.producer.produce()
        try:
            self._sink.write(encode_frame(payload))
        except SinkClosedError as e:
            # The consumer is gone; nothing more will be written from here.
            self._state = EmitterState.CANCELLED
            self._next_due = None
            return e
        self.frames_written += 1
        return None

    def _report_failure(self, error: SinkClosedError) -> None:
        _logger.debug("Emitter %s observed closed sink: %s", self.name, error)
        if self._on_write_failure is not None:
            self._on_write_failure(self, error)

    def __repr__(self) -> str:
        return (
            f"ScheduledEmitter(name={self.name!r}, period_ms={self.period_ms}, "
            f"fire_immediately={self.fire_immediately}, state={self._state.value})"
        )

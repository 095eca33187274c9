"""
Session: the live emitters and shared sink of one client connection.

A session is opened from a recipe, owns one ScheduledEmitter per recipe
entry, and is torn down exactly once through its CancellationToken. The
transport holds the same token, so a client disconnect, a write failure seen
by an emitter, and server shutdown all funnel into one idempotent teardown.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable

from ..infra.exceptions import SinkClosedError
from .clock import MasterClock
from .emitter import DUE_EPSILON_S, MAX_CATCH_UP_TICKS, ScheduledEmitter
from .recipes import ProducerDeps, Recipe, build_producer
from .sink import FrameSink

_logger = logging.getLogger(__name__)

CloseCallback = Callable[["Session"], None]


class CancellationToken:
    """Cooperative cancellation token shared between transport and session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: list[Callable[[str], None]] = []
        self.reason: str | None = None
        self.cancelled_at: datetime | None = None

    def cancel(self, reason: str = "requested") -> bool:
        """Mark token as cancelled (idempotent). Returns True for the first call only."""
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self.cancelled_at = datetime.now(timezone.utc)
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback(reason)
        return True

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def on_cancel(self, callback: Callable[[str], None]) -> None:
        """Run ``callback(reason)`` on cancellation; immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
            reason = self.reason or "requested"
        callback(reason)


class Session:
    """Coherent set of scheduled emitters bound to one sink."""

    def __init__(
        self,
        recipe: Recipe,
        sink: FrameSink,
        emitters: list[ScheduledEmitter] | None = None,
        *,
        session_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.recipe = recipe
        self.sink = sink
        self.token = token or CancellationToken()
        self._emitters: list[ScheduledEmitter] = list(emitters or [])
        self._close_callbacks: list[CloseCallback] = []
        self._callbacks_lock = threading.Lock()
        self._closed = threading.Event()
        self._teardown_thread: int | None = None
        self.close_reason: str | None = None
        self.opened_at = datetime.now(timezone.utc)
        self.token.on_cancel(self._teardown)

    # Construction -------------------------------------------------------
    @classmethod
    def open(
        cls,
        recipe: Recipe,
        sink: FrameSink,
        *,
        clock: MasterClock,
        deps: ProducerDeps | None = None,
        session_id: str | None = None,
        token: CancellationToken | None = None,
    ) -> Session:
        """Build one emitter per recipe entry and start them in recipe order."""
        deps = deps or ProducerDeps()
        session = cls(recipe, sink, session_id=session_id, token=token)
        for index, entry in enumerate(recipe.entries):
            emitter = ScheduledEmitter(
                build_producer(entry, deps),
                entry.period_ms,
                sink,
                fire_immediately=entry.fire_immediately,
                on_write_failure=session._on_write_failure,
                name=f"{session.session_id}/{index}:{entry.describe()}",
            )
            session._emitters.append(emitter)
        _logger.info(
            "Session %s opened for %s (%s)",
            session.session_id,
            recipe.name,
            ", ".join(entry.describe() for entry in recipe.entries),
        )
        session.start(clock.now())
        return session

    def start(self, t_now: float) -> None:
        for emitter in self._emitters:
            if self.token.is_cancelled():
                break
            emitter.start(t_now)

    # Introspection ------------------------------------------------------
    @property
    def emitters(self) -> tuple[ScheduledEmitter, ...]:
        return tuple(self._emitters)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def endpoint(self) -> str:
        return self.recipe.name

    def frames_written(self) -> int:
        return sum(emitter.frames_written for emitter in self._emitters)

    def wait_closed(self, timeout: float | None = None) -> bool:
        return self._closed.wait(timeout)

    def add_close_callback(self, callback: CloseCallback) -> None:
        """Run ``callback(session)`` after teardown; immediately if already closed."""
        with self._callbacks_lock:
            if not self._closed.is_set():
                self._close_callbacks.append(callback)
                return
        callback(self)

    # Ticking ------------------------------------------------------------
    def on_paced_tick(self, t_now: float, dt: float) -> None:
        """
        Fire every due tick, earliest first.

        Ticks due at the same station time fire in recipe order.
        """
        budget = len(self._emitters) * (MAX_CATCH_UP_TICKS + 1)
        while budget > 0 and not self.token.is_cancelled():
            next_emitter: ScheduledEmitter | None = None
            next_due = 0.0
            for emitter in self._emitters:
                due = emitter.due_at()
                if due is None or due > t_now + DUE_EPSILON_S:
                    continue
                if next_emitter is None or due < next_due - DUE_EPSILON_S:
                    next_emitter, next_due = emitter, due
            if next_emitter is None:
                return
            next_emitter.tick(t_now)
            budget -= 1

    # Teardown -----------------------------------------------------------
    def close(self, reason: str = "closed") -> bool:
        """
        Tear the session down. Idempotent; returns True for the call that closed it.

        Every call returns only after teardown has finished, except a call made
        from inside the teardown itself.
        """
        if self.token.cancel(reason):
            return True
        if self._teardown_thread != threading.get_ident():
            self._closed.wait()
        return False

    def _on_write_failure(self, emitter: ScheduledEmitter, error: SinkClosedError) -> None:
        self.close(reason="write-failed")

    def _teardown(self, reason: str) -> None:
        self._teardown_thread = threading.get_ident()
        self.close_reason = reason
        for emitter in self._emitters:
            try:
                emitter.cancel()
            except Exception:
                _logger.exception("Session %s: cancelling %s failed", self.session_id, emitter.name)
        try:
            self.sink.close()
        except Exception:
            _logger.exception("Session %s: closing sink failed", self.session_id)
        with self._callbacks_lock:
            self._closed.set()
            callbacks = list(self._close_callbacks)
            self._close_callbacks.clear()
        _logger.info(
            "Session %s closed (endpoint=%s, reason=%s, frames=%d)",
            self.session_id,
            self.recipe.name,
            reason,
            self.frames_written(),
        )
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                _logger.exception("Session %s: close callback failed", self.session_id)

    def __repr__(self) -> str:
        return f"Session(id={self.session_id!r}, endpoint={self.recipe.name!r}, closed={self.closed})"

"""
Session manager: live-session tracking and the shared pace thread.

Every open session is registered with one PaceController, so all emitter
ticks of the process run on a single timer thread. Shutdown closes every
live session before the pace thread stops; no timer outlives the manager.
"""

from __future__ import annotations

import logging
import threading

from ..infra.exceptions import SessionClosedError
from .clock import MasterClock, RealTimeMasterClock
from .pace import PaceController
from .recipes import ProducerDeps, RecipeRegistry
from .session import Session
from .sink import DEFAULT_SINK_BYTES, FrameSink, QueueFrameSink

_logger = logging.getLogger(__name__)

PACE_JOIN_TIMEOUT_S = 2.0


class SessionManager:
    """Opens sessions by endpoint name and owns their shared timer."""

    def __init__(
        self,
        recipes: RecipeRegistry,
        *,
        clock: MasterClock | None = None,
        pace: PaceController | None = None,
        deps: ProducerDeps | None = None,
        pace_hz: float = 50.0,
        sink_max_bytes: int = DEFAULT_SINK_BYTES,
    ) -> None:
        self.recipes = recipes
        self.clock = pace.clock if pace is not None else (clock or RealTimeMasterClock())
        self.pace = pace or PaceController(clock=self.clock, target_hz=pace_hz)
        self.deps = deps or ProducerDeps()
        self.sink_max_bytes = sink_max_bytes
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._shutting_down = False

    # Lifecycle ----------------------------------------------------------
    def start(self) -> None:
        """Start the pace thread. Stepped controllers are driven by the caller instead."""
        with self._lock:
            if self._shutting_down:
                raise SessionClosedError("session manager is shut down")
            if self._thread is not None or self.pace.sleep_fn is None:
                return
            self._thread = threading.Thread(
                target=self.pace.run_forever,
                name="tickstream-pace",
                daemon=True,
            )
            self._thread.start()
        _logger.info("Pace thread started at %.1f Hz", 1.0 / self.pace.frame_interval)

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def shutdown(self, timeout: float = PACE_JOIN_TIMEOUT_S) -> None:
        """Close every live session, then stop the pace thread. Idempotent."""
        with self._lock:
            if self._shutting_down:
                return
            self._shutting_down = True
            sessions = list(self._sessions.values())
        _logger.info("Shutting down: closing %d live session(s)", len(sessions))
        for session in sessions:
            session.close(reason="shutdown")
        self.pace.stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                _logger.warning("Pace thread did not stop within %.1fs", timeout)

    # Sessions -----------------------------------------------------------
    def open_session(self, endpoint: str, sink: FrameSink | None = None) -> Session:
        """
        Open a session for ``endpoint`` and register it with the pace thread.

        Raises KeyError for an unknown endpoint and SessionClosedError once
        shutdown has started.
        """
        if self._shutting_down:
            raise SessionClosedError("session manager is shut down")
        recipe = self.recipes.recipe_for(endpoint)
        if sink is None:
            sink = QueueFrameSink(self.sink_max_bytes)
        session = Session.open(recipe, sink, clock=self.clock, deps=self.deps)
        with self._lock:
            accepted = not self._shutting_down
            if accepted:
                self._sessions[session.session_id] = session
        if not accepted:
            session.close(reason="shutdown")
            raise SessionClosedError("session manager is shut down")
        self.pace.add_participant(session)
        session.add_close_callback(self._forget)
        return session

    def _forget(self, session: Session) -> None:
        self.pace.remove_participant(session)
        with self._lock:
            self._sessions.pop(session.session_id, None)

    def live_sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

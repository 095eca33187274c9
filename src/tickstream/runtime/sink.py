"""
Output sinks for encoded frames.

A sink is the single write handle shared by every emitter of one session.
Writes are serialized by the sink's own lock, so a sink is safe to feed from
the pace thread while the transport drains it from another thread.

- QueueFrameSink: byte-bounded queue drained by the HTTP transport.
- StreamFrameSink: writes straight to a text stream (CLI preview).
"""

from __future__ import annotations

import logging
import threading
from queue import Empty
from typing import Optional, Protocol, TextIO, runtime_checkable

from ..infra.exceptions import SinkClosedError

_logger = logging.getLogger(__name__)

# Per-session buffer floor; small caps would drop whole template frames.
MIN_SINK_BYTES = 16 * 1024
DEFAULT_SINK_BYTES = 1_048_576


@runtime_checkable
class FrameSink(Protocol):
    """Write handle for encoded frames."""

    @property
    def closed(self) -> bool:
        """True once the sink no longer accepts frames."""
        ...

    def write(self, frame: str) -> None:
        """Write one complete frame. Raises SinkClosedError if the consumer is gone."""
        ...

    def close(self) -> None:
        """Stop accepting frames. Idempotent."""
        ...


class QueueFrameSink:
    """
    Thread-safe frame queue with a byte-size cap. When full, oldest frames are dropped.
    Used per session so a slow client only ever loses its own frames.
    """

    def __init__(self, max_bytes: int = DEFAULT_SINK_BYTES) -> None:
        self._max_bytes = max(MIN_SINK_BYTES, max_bytes)
        self._lock = threading.Lock()
        self._frames: list[tuple[str, int]] = []
        self._current_bytes = 0
        self._not_empty = threading.Condition(self._lock)
        self._closed = False
        self.dropped_frames = 0
        self.written_frames = 0

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def write(self, frame: str) -> None:
        """Enqueue a frame; drop oldest frames if over cap."""
        size = len(frame.encode("utf-8"))
        with self._lock:
            if self._closed:
                raise SinkClosedError("sink is closed")
            dropped = 0
            while self._frames and self._current_bytes + size > self._max_bytes:
                _, old_size = self._frames.pop(0)
                self._current_bytes -= old_size
                dropped += 1
            self._frames.append((frame, size))
            self._current_bytes += size
            self.written_frames += 1
            self.dropped_frames += dropped
            self._not_empty.notify()
        if dropped:
            _logger.warning("Sink over %d bytes, dropped %d oldest frame(s)", self._max_bytes, dropped)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Block until a frame is available or timeout. Returns None once closed; raises Empty on timeout."""
        with self._not_empty:
            while not self._closed and not self._frames:
                if timeout is not None:
                    if not self._not_empty.wait(timeout=timeout):
                        raise Empty
                else:
                    self._not_empty.wait()
            if self._closed:
                return None
            frame, size = self._frames.pop(0)
            self._current_bytes -= size
            return frame

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._frames.clear()
            self._current_bytes = 0
            self._not_empty.notify_all()

    @property
    def current_bytes(self) -> int:
        with self._lock:
            return self._current_bytes

    @property
    def pending_frames(self) -> int:
        with self._lock:
            return len(self._frames)


class StreamFrameSink:
    """Sink writing frames to a text stream, flushing after every frame."""

    def __init__(self, stream: TextIO, *, close_stream: bool = False) -> None:
        self._stream = stream
        self._close_stream = close_stream
        self._lock = threading.Lock()
        self._closed = False
        self.written_frames = 0

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def write(self, frame: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkClosedError("sink is closed")
            try:
                self._stream.write(frame)
                self._stream.flush()
            except (OSError, ValueError) as e:
                # BrokenPipeError from a closed pipe, ValueError from a closed file.
                self._closed = True
                raise SinkClosedError(f"stream write failed: {e}") from e
            self.written_frames += 1

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._close_stream:
                try:
                    self._stream.close()
                except OSError as e:
                    _logger.debug("Closing sink stream failed: %s", e)

"""Time sources for the streaming runtime.

Two separate notions of time are used:

* *Station time* (:class:`MasterClock`): monotonic seconds that drive
  scheduling. Every emitter due time is expressed in it. The real-time clock
  follows ``time.perf_counter``; the stepped clock only moves when a test
  calls :meth:`SteppedMasterClock.advance`.
* *Wall time* (:class:`WallClock`): aware UTC datetimes, only read by the
  timestamp producer.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Protocol, runtime_checkable

MonotonicFn = Callable[[], float]


@runtime_checkable
class MasterClock(Protocol):
    """Supplier of station time."""

    def now(self) -> float:
        """Return station time in seconds. Never decreases."""


@dataclass
class RealTimeMasterClock:
    """Station time following a monotonic counter, optionally scaled by ``rate``."""

    rate: float = 1.0
    start: float = 0.0
    monotonic_fn: MonotonicFn = field(default=time.perf_counter)

    def __post_init__(self) -> None:
        if self.rate <= 0.0:
            raise ValueError("rate must be greater than zero")
        self._anchor = self.monotonic_fn()
        self._last = self.start

    def now(self) -> float:
        t = self.start + (self.monotonic_fn() - self._anchor) * self.rate
        # Clamp so a misbehaving counter cannot move station time backwards.
        if t < self._last:
            return self._last
        self._last = t
        return t


class SteppedMasterClock:
    """Station time that moves only through :meth:`advance`."""

    def __init__(self, start: float = 0.0) -> None:
        self._t = start
        self._lock = Lock()

    def now(self) -> float:
        with self._lock:
            return self._t

    def advance(self, seconds: float) -> float:
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        with self._lock:
            self._t += seconds
            return self._t


@runtime_checkable
class WallClock(Protocol):
    """Supplier of wall-clock instants."""

    def now_utc(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""


class SystemWallClock:
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedWallClock:
    """Wall clock pinned to one instant; tests move it with :meth:`advance`."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None or instant.utcoffset() is None:
            raise ValueError("instant must be timezone-aware")
        self._instant = instant.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._instant

    def advance(self, seconds: float) -> datetime:
        self._instant += timedelta(seconds=seconds)
        return self._instant


def format_iso_utc(instant: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    utc = instant.astimezone(timezone.utc)
    return f"{utc:%Y-%m-%dT%H:%M:%S}.{utc.microsecond // 1000:03d}Z"

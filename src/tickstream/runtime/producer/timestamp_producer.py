"""Timestamp producer: the current instant as one ISO-8601 line."""

from __future__ import annotations

from ..clock import SystemWallClock, WallClock, format_iso_utc
from ..frames import EventPayload
from .base import Producer, ProducerKind


class TimestampProducer(Producer):
    kind = ProducerKind.TIMESTAMP

    def __init__(self, wall_clock: WallClock | None = None) -> None:
        super().__init__()
        self._wall_clock = wall_clock or SystemWallClock()

    def _generate(self) -> EventPayload:
        return EventPayload.single(self.event_type, format_iso_utc(self._wall_clock.now_utc()))

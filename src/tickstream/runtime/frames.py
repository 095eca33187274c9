"""
Frame encoding for the event stream wire format.

One frame is::

    event:<type>\\n
    data: <line>\\n      (one per data line)
    \\n

Scalar payloads (``timestamp``, ``console``, ``update``) put a single space
after ``data:``. Template bodies are stored fragments and use ``data:<line>``
with no space. Client-side parsers split on the literal text, so the
asymmetry is part of the contract and is keyed on the event type.

There is no escaping: a data line must never contain a newline. Payloads are
checked when they are built; :func:`encode_frame` itself cannot fail.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

EVENT_TYPE_PATTERN = re.compile(r"^[a-z-]+$")

TIMESTAMP_EVENT = "timestamp"
CONSOLE_EVENT = "console"
TEMPLATE_EVENT = "template"
UPDATE_EVENT = "update"


class DataLineStyle(Enum):
    """How a data line is prefixed on the wire."""

    SPACED = "data: "
    COMPACT = "data:"


# Event types whose data lines are written without the space.
_COMPACT_EVENTS = frozenset({TEMPLATE_EVENT})


@dataclass(frozen=True)
class EventPayload:
    """Typed payload for one frame: an event type plus its data lines."""

    event_type: str
    data_lines: tuple[str, ...]

    def __post_init__(self) -> None:
        if not EVENT_TYPE_PATTERN.fullmatch(self.event_type):
            raise ValueError(f"invalid event type: {self.event_type!r}")
        # Accept any sequence from callers, store a tuple.
        object.__setattr__(self, "data_lines", tuple(self.data_lines))
        for line in self.data_lines:
            if "\n" in line or "\r" in line:
                raise ValueError(f"data line for {self.event_type!r} contains a line break")

    @classmethod
    def single(cls, event_type: str, line: str) -> EventPayload:
        return cls(event_type, (line,))


def style_for(event_type: str) -> DataLineStyle:
    """Return the data-line style used on the wire for an event type."""
    if event_type in _COMPACT_EVENTS:
        return DataLineStyle.COMPACT
    return DataLineStyle.SPACED


def encode_frame(payload: EventPayload) -> str:
    """Encode ``payload`` as one wire frame terminated by a blank line."""
    prefix = style_for(payload.event_type).value
    parts = [f"event:{payload.event_type}\n"]
    parts.extend(f"{prefix}{line}\n" for line in payload.data_lines)
    parts.append("\n")
    return "".join(parts)


def make_update_payload(element_id: str, value: str) -> EventPayload:
    """
    Build an ``update`` payload: one data line holding ``{"id": ..., "value": ...}``.

    ``element_id`` is not checked against the page; ``value`` is not escaped
    against markup injection. Rendering it safely is the client's job.
    """
    body = json.dumps({"id": element_id, "value": value})
    return EventPayload.single(UPDATE_EVENT, body)


def decode_update(payload: EventPayload) -> dict[str, Any]:
    """Return the ``{"id", "value"}`` object carried by an ``update`` payload."""
    if payload.event_type != UPDATE_EVENT:
        raise ValueError(f"not an update payload: {payload.event_type!r}")
    return json.loads("".join(payload.data_lines))


def parse_frames(text: str) -> list[EventPayload]:
    """
    Split wire text into payloads.

    Accepts both ``event:x`` and ``event: x`` and both data-line styles.
    A trailing frame without its terminating blank line is ignored, since it
    may still be in flight.
    """
    frames: list[EventPayload] = []
    event_type: str | None = None
    lines: list[str] = []

    # The last element follows the final newline and is never a complete line.
    for raw in text.split("\n")[:-1]:
        if raw == "":
            if event_type is not None:
                frames.append(EventPayload(event_type, tuple(lines)))
            event_type = None
            lines = []
            continue
        field_name, _, value = raw.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field_name == "event":
            event_type = value
        elif field_name == "data":
            if event_type is None:
                raise ValueError(f"data line outside of an event: {raw!r}")
            lines.append(value)
        else:
            raise ValueError(f"unexpected line in event stream: {raw!r}")

    return frames

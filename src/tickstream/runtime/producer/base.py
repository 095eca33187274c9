"""
Producer Protocol (Capability Provider)

Pattern: Content Generator

A Producer synthesizes the payload for one event type. Producers are
swappable: a recipe names a producer kind, and the session wires whichever
implementation the kind maps to behind the same interface.

Key Responsibilities:
- Return exactly one EventPayload per invocation
- Never raise: a failing content source degrades to an empty content line

Boundaries:
- Producer IS allowed to: Generate content, hold its own selection state
- Producer IS NOT allowed to: Write to sinks, schedule itself, know about sessions
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

from ..frames import EventPayload


class ProducerKind(Enum):
    """Producer variants a recipe can name."""

    TIMESTAMP = "timestamp"
    CONSOLE = "console"
    TEMPLATE = "template"
    UPDATE = "update"


class Producer(ABC):
    """
    Base class for payload generators.

    Subclasses implement :meth:`_generate`; callers use :meth:`produce`,
    which turns a content-source failure into the fallback payload.
    """

    kind: ProducerKind

    def __init__(self) -> None:
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.fault_count = 0

    @property
    def event_type(self) -> str:
        return self.kind.value

    def produce(self) -> EventPayload:
        """Return the next payload, or an empty content line if generation fails."""
        try:
            return self._generate()
        except Exception as e:
            self.fault_count += 1
            self._logger.warning(
                "Producer %s failed, emitting empty content (error: %s)",
                self.kind.value,
                e,
            )
            return self._fallback()

    @abstractmethod
    def _generate(self) -> EventPayload:
        """Build the payload for one invocation."""

    def _fallback(self) -> EventPayload:
        return EventPayload.single(self.event_type, "")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value})"

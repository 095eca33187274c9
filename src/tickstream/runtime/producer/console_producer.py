"""
Console-line producer.

Concatenates generated sentences with single spaces while the line stays
under :data:`MAX_CONSOLE_LENGTH` characters. A long first sentence can leave
the line empty; that is still a valid console line.
"""

from __future__ import annotations

from ..frames import EventPayload
from .base import Producer, ProducerKind
from .sentences import SentenceSource

MAX_CONSOLE_LENGTH = 80
# Bounds the loop when the source keeps returning tiny sentences.
MAX_SENTENCES_PER_LINE = 40


def build_console_line(source: SentenceSource, limit: int = MAX_CONSOLE_LENGTH) -> str:
    """Join sentences from ``source`` into a line shorter than ``limit``."""
    line = ""
    for _ in range(MAX_SENTENCES_PER_LINE):
        sentence = source.sentence().replace("\n", " ").replace("\r", " ").strip()
        if not sentence:
            break
        candidate = f"{line} {sentence}" if line else sentence
        if len(candidate) >= limit:
            break
        line = candidate
    return line


class ConsoleProducer(Producer):
    kind = ProducerKind.CONSOLE

    def __init__(self, source: SentenceSource) -> None:
        super().__init__()
        self._source = source

    def _generate(self) -> EventPayload:
        return EventPayload.single(self.event_type, build_console_line(self._source))

"""Field-update producer: a fresh short value for one placeholder element."""

from __future__ import annotations

import random

from ..frames import EventPayload, make_update_payload
from .base import Producer, ProducerKind
from .sentences import SentenceSource

MIN_VALUE_WORDS = 2
MAX_VALUE_WORDS = 4


class UpdateProducer(Producer):
    kind = ProducerKind.UPDATE

    def __init__(
        self,
        target: str,
        source: SentenceSource,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__()
        if not target:
            raise ValueError("update producer requires a target element id")
        self.target = target
        self._source = source
        self._rng = rng or random.Random()

    def _generate(self) -> EventPayload:
        count = self._rng.randint(MIN_VALUE_WORDS, MAX_VALUE_WORDS)
        words = " ".join(self._source.words(count)).split()
        return make_update_payload(self.target, " ".join(words))

    def _fallback(self) -> EventPayload:
        # Keep the JSON shape so the client still finds its element.
        return make_update_payload(self.target, "")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(target={self.target!r})"

"""
Random text sources for producers.

Content synthesis is delegated to Faker; producers only depend on the small
:class:`SentenceSource` protocol so tests can script the text.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from faker import Faker


@runtime_checkable
class SentenceSource(Protocol):
    """Supplier of short generated text."""

    def sentence(self) -> str:
        """Return one generated sentence (no line breaks)."""

    def words(self, count: int) -> list[str]:
        """Return ``count`` generated words."""


class FakerSentenceSource:
    """SentenceSource backed by Faker's lorem provider."""

    def __init__(self, seed: int | None = None, locale: str | None = None) -> None:
        self._faker = Faker(locale) if locale else Faker()
        if seed is not None:
            self._faker.seed_instance(seed)

    def sentence(self) -> str:
        return self._faker.sentence()

    def words(self, count: int) -> list[str]:
        return self._faker.words(nb=count)

"""
Recipe table: which producers, at which periods, each endpoint streams.

A recipe is an ordered list of ``(producer kind, period, fire immediately,
target)`` entries. The table is built once at startup, validated, and never
mutated afterwards; every session for an endpoint instantiates the same
recipe.

Expected JSON format for an override file::

    {
      "recipes": {
        "timestamp": [{"kind": "timestamp", "period_ms": 100}],
        "panel": [
          {"kind": "template", "period_ms": 10000, "fire_immediately": true},
          {"kind": "update", "period_ms": 500, "target": "func-name"}
        ]
      }
    }
"""

from __future__ import annotations

import json
import logging
import random
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from ..infra.exceptions import RecipeError
from .clock import SystemWallClock, WallClock
from .producer import (
    FUNC_NAME_ID,
    MEMBER_NAME_ID,
    ConsoleProducer,
    FakerSentenceSource,
    Producer,
    ProducerKind,
    SentenceSource,
    TemplateProducer,
    TimestampProducer,
    UpdateProducer,
)

_logger = logging.getLogger(__name__)

ENDPOINT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")

# Tick periods of the original handlers; update periods are detuned so the
# two field updates rarely land on the same tick.
CLOCK_TICK_MS = 100
CONSOLE_TICK_MS = 1000
TEMPLATE_TICK_MS = 10000
FUNC_UPDATE_TICK_MS = 500
MEMBER_UPDATE_TICK_MS = 730


@dataclass(frozen=True)
class RecipeEntry:
    """One producer slot of a recipe."""

    kind: ProducerKind
    period_ms: int
    fire_immediately: bool = False
    target: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ProducerKind):
            raise RecipeError(f"unknown producer kind: {self.kind!r}")
        if isinstance(self.period_ms, bool) or not isinstance(self.period_ms, int) or self.period_ms <= 0:
            raise RecipeError(f"period_ms must be a positive integer, got {self.period_ms!r}")
        if not isinstance(self.fire_immediately, bool):
            raise RecipeError(f"fire_immediately must be true or false, got {self.fire_immediately!r}")
        if self.target is not None and not (isinstance(self.target, str) and self.target):
            raise RecipeError(f"target must be a non-empty string, got {self.target!r}")
        if self.kind is ProducerKind.UPDATE:
            if not self.target:
                raise RecipeError("update entries require a target element id")
        elif self.target is not None:
            raise RecipeError(f"{self.kind.value} entries do not take a target")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecipeEntry:
        if not isinstance(data, Mapping):
            raise RecipeError(f"recipe entry must be an object, got {type(data).__name__}")
        unknown = set(data) - {"kind", "period_ms", "fire_immediately", "target"}
        if unknown:
            raise RecipeError(f"unknown recipe entry fields: {sorted(unknown)}")
        try:
            kind = ProducerKind(data["kind"])
        except KeyError as e:
            raise RecipeError("recipe entry is missing 'kind'") from e
        except ValueError as e:
            raise RecipeError(f"unknown producer kind: {data['kind']!r}") from e
        if "period_ms" not in data:
            raise RecipeError(f"{kind.value} entry is missing 'period_ms'")
        return cls(
            kind=kind,
            period_ms=data["period_ms"],
            fire_immediately=data.get("fire_immediately", False),
            target=data.get("target"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "period_ms": self.period_ms,
            "fire_immediately": self.fire_immediately,
            "target": self.target,
        }

    def describe(self) -> str:
        label = self.kind.value if self.target is None else f"{self.kind.value}({self.target})"
        suffix = " immediate" if self.fire_immediately else ""
        return f"{label}@{self.period_ms}ms{suffix}"


@dataclass(frozen=True)
class Recipe:
    """Named, ordered set of entries an endpoint instantiates per connection."""

    name: str
    entries: tuple[RecipeEntry, ...]

    def __post_init__(self) -> None:
        if not ENDPOINT_NAME_PATTERN.fullmatch(self.name):
            raise RecipeError(f"invalid endpoint name: {self.name!r}")
        object.__setattr__(self, "entries", tuple(self.entries))
        if not self.entries:
            raise RecipeError(f"recipe {self.name!r} has no entries")

    def __iter__(self) -> Iterator[RecipeEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]


def _entry(kind: ProducerKind, period_ms: int, *, immediate: bool = False, target: str | None = None) -> RecipeEntry:
    return RecipeEntry(kind=kind, period_ms=period_ms, fire_immediately=immediate, target=target)


_PANEL_ENTRIES = (
    _entry(ProducerKind.TEMPLATE, TEMPLATE_TICK_MS, immediate=True),
    _entry(ProducerKind.UPDATE, FUNC_UPDATE_TICK_MS, target=FUNC_NAME_ID),
    _entry(ProducerKind.UPDATE, MEMBER_UPDATE_TICK_MS, target=MEMBER_NAME_ID),
)

DEFAULT_RECIPES: Mapping[str, Recipe] = MappingProxyType(
    {
        recipe.name: recipe
        for recipe in (
            Recipe("timestamp", (_entry(ProducerKind.TIMESTAMP, CLOCK_TICK_MS),)),
            Recipe("console", (_entry(ProducerKind.CONSOLE, CONSOLE_TICK_MS),)),
            Recipe("template", (_entry(ProducerKind.TEMPLATE, TEMPLATE_TICK_MS, immediate=True),)),
            Recipe("panel", _PANEL_ENTRIES),
            Recipe(
                "combined",
                (
                    _entry(ProducerKind.TIMESTAMP, CLOCK_TICK_MS),
                    _entry(ProducerKind.CONSOLE, CONSOLE_TICK_MS),
                )
                + _PANEL_ENTRIES,
            ),
        )
    }
)


class RecipeRegistry:
    """Read-only lookup from endpoint name to recipe."""

    def __init__(self, recipes: Iterable[Recipe]) -> None:
        table: dict[str, Recipe] = {}
        for recipe in recipes:
            if recipe.name in table:
                raise RecipeError(f"duplicate recipe name: {recipe.name!r}")
            table[recipe.name] = recipe
        if not table:
            raise RecipeError("recipe table is empty")
        self._recipes: Mapping[str, Recipe] = MappingProxyType(table)

    @classmethod
    def default(cls) -> RecipeRegistry:
        return cls(DEFAULT_RECIPES.values())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecipeRegistry:
        recipes_data = data.get("recipes") if isinstance(data, Mapping) else None
        if not isinstance(recipes_data, Mapping):
            raise RecipeError("recipe file must contain a 'recipes' object")
        recipes = []
        for name, entries in recipes_data.items():
            if not isinstance(entries, list):
                raise RecipeError(f"recipe {name!r} must be a list of entries")
            recipes.append(Recipe(str(name), tuple(RecipeEntry.from_dict(e) for e in entries)))
        return cls(recipes)

    @classmethod
    def from_file(cls, path: Path | str) -> RecipeRegistry:
        config_path = Path(path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise RecipeError(f"cannot read recipe file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise RecipeError(f"cannot parse recipe file {config_path}: {e}") from e
        registry = cls.from_dict(data)
        _logger.info("Loaded %d recipes from %s", len(registry), config_path)
        return registry

    def recipe_for(self, endpoint: str) -> Recipe:
        """Return the recipe for ``endpoint``; KeyError when there is none."""
        return self._recipes[endpoint]

    def get(self, endpoint: str) -> Recipe | None:
        return self._recipes.get(endpoint)

    def names(self) -> list[str]:
        return list(self._recipes)

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._recipes

    def __iter__(self) -> Iterator[Recipe]:
        return iter(self._recipes.values())

    def __len__(self) -> int:
        return len(self._recipes)

    def to_dict(self) -> dict[str, Any]:
        return {"recipes": {name: recipe.to_list() for name, recipe in self._recipes.items()}}


def load_recipes(path: Path | str | None = None) -> RecipeRegistry:
    """Built-in table, or the table from ``path`` when given. Errors are fatal."""
    if path is None:
        return RecipeRegistry.default()
    return RecipeRegistry.from_file(path)


@dataclass
class ProducerDeps:
    """Shared collaborators handed to every producer a session builds."""

    sentences: SentenceSource = field(default_factory=FakerSentenceSource)
    wall_clock: WallClock = field(default_factory=SystemWallClock)
    rng: random.Random | None = None


def build_producer(entry: RecipeEntry, deps: ProducerDeps) -> Producer:
    """Instantiate the producer a recipe entry names."""
    kind = entry.kind
    if kind is ProducerKind.TIMESTAMP:
        return TimestampProducer(deps.wall_clock)
    if kind is ProducerKind.CONSOLE:
        return ConsoleProducer(deps.sentences)
    if kind is ProducerKind.TEMPLATE:
        return TemplateProducer(deps.rng)
    if kind is ProducerKind.UPDATE:
        return UpdateProducer(entry.target or "", deps.sentences, deps.rng)
    raise RecipeError(f"unknown producer kind: {kind!r}")

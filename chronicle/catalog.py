"""Content catalog — read-only reference data for one story.

The catalog is loaded from a JSON preset and validated once at startup.
Lookups by display name exist because the narrator addresses characters,
stats, items and events by name in its markup.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator

from chronicle.models import (
    Chapter,
    Character,
    Ending,
    Event,
    Item,
    NewGameSetup,
    Scene,
    StatConfig,
    StoryInfo,
)

logger = logging.getLogger(__name__)

PRESETS_DIR = Path(__file__).parent / "presets"
DEFAULT_CATALOG_PATH = PRESETS_DIR / "catalog.json"


class CatalogError(Exception):
    """Raised when a catalog file cannot be read or fails validation."""


class FallbackLines(BaseModel):
    """In-character filler used when the narrator produces nothing.

    `character` lines are format strings receiving `name`.
    """

    model_config = ConfigDict(frozen=True)

    character: list[str] = Field(default_factory=list)
    ambient: list[str] = Field(default_factory=list)
    character_error: list[str] = Field(default_factory=list)
    ambient_error: list[str] = Field(default_factory=list)


class TimeDisplay(BaseModel):
    year: int
    month_in_year: int
    age: int
    remaining: int


class Catalog(BaseModel):
    story: StoryInfo
    max_months: int = 60
    player_subject: str = "玩家"
    player_stats: list[StatConfig]
    characters: list[Character]
    scenes: list[Scene]
    items: list[Item]
    events: list[Event]
    chapters: list[Chapter]
    endings: list[Ending]
    fallback_ending: str
    new_game: NewGameSetup
    fallback_lines: FallbackLines = Field(default_factory=FallbackLines)

    _characters: dict[str, Character] = PrivateAttr(default_factory=dict)
    _scenes: dict[str, Scene] = PrivateAttr(default_factory=dict)
    _items: dict[str, Item] = PrivateAttr(default_factory=dict)
    _events: dict[str, Event] = PrivateAttr(default_factory=dict)
    _endings: dict[str, Ending] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._characters = {c.id: c for c in self.characters}
        self._scenes = {s.id: s for s in self.scenes}
        self._items = {i.id: i for i in self.items}
        self._events = {e.id: e for e in self.events}
        self._endings = {e.id: e for e in self.endings}

    @model_validator(mode="after")
    def _check_references(self) -> "Catalog":
        if not self.chapters:
            raise ValueError("catalog needs at least one chapter")
        ending_ids = {e.id for e in self.endings}
        if self.fallback_ending not in ending_ids:
            raise ValueError(f"fallback ending {self.fallback_ending!r} is not in the catalog")
        scene_ids = {s.id for s in self.scenes}
        if self.new_game.scene not in scene_ids:
            raise ValueError(f"starting scene {self.new_game.scene!r} is not in the catalog")
        return self

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path) -> "Catalog":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot read catalog {path}: {e}") from e
        try:
            catalog = cls.model_validate(data)
        except ValidationError as e:
            raise CatalogError(f"Invalid catalog {path}: {e}") from e
        logger.debug(
            "loaded catalog %s: %d characters, %d scenes, %d events, %d endings",
            path.name, len(catalog.characters), len(catalog.scenes),
            len(catalog.events), len(catalog.endings),
        )
        return catalog

    # ------------------------------------------------------------------
    # Id lookups
    # ------------------------------------------------------------------

    def character(self, character_id: str | None) -> Character | None:
        if character_id is None:
            return None
        return self._characters.get(character_id)

    def scene(self, scene_id: str) -> Scene | None:
        return self._scenes.get(scene_id)

    def item(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def event(self, event_id: str) -> Event | None:
        return self._events.get(event_id)

    def ending(self, ending_id: str | None) -> Ending | None:
        if ending_id is None:
            return None
        return self._endings.get(ending_id)

    # ------------------------------------------------------------------
    # Name lookups (narrator markup)
    # ------------------------------------------------------------------

    def find_character(self, name: str) -> Character | None:
        """Match a character by display name, English name or id."""
        name = name.strip()
        for c in self.characters:
            if name in (c.name, c.id) or (c.name_en and name.lower() == c.name_en.lower()):
                return c
        return None

    def find_item(self, name: str) -> Item | None:
        name = name.strip()
        for item in self.items:
            if name in (item.name, item.id):
                return item
        return None

    def find_event(self, name: str) -> Event | None:
        name = name.strip()
        for evt in self.events:
            if name in (evt.name, evt.id):
                return evt
        return None

    def find_player_stat(self, name: str) -> StatConfig | None:
        return _find_stat(self.player_stats, name)

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def chapter_for_month(self, month: int) -> Chapter:
        """The chapter whose month range contains `month`, else the last chapter."""
        for chapter in self.chapters:
            lo, hi = chapter.month_range
            if lo <= month <= hi:
                return chapter
        return self.chapters[-1]

    def time_display(self, month: int) -> TimeDisplay:
        return TimeDisplay(
            year=math.ceil(month / 12),
            month_in_year=(month - 1) % 12 + 1,
            age=self.story.start_age + (month - 1) // 12,
            remaining=self.max_months - month,
        )


def find_stat(character: Character, name: str) -> StatConfig | None:
    """Match one of a character's stats by alias, label or key."""
    return _find_stat(character.stats, name)


def _find_stat(stats: list[StatConfig], name: str) -> StatConfig | None:
    name = name.strip()
    for stat in stats:
        if name in (stat.alias, stat.label, stat.key):
            return stat
    return None


_default: Catalog | None = None


def default_catalog() -> Catalog:
    """The catalog shipped with the package, loaded once."""
    global _default
    if _default is None:
        _default = Catalog.load(DEFAULT_CATALOG_PATH)
    return _default

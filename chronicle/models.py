"""Core domain models.

Catalog types are immutable reference data; GameState is the only mutable
aggregate. Every engine stage and the save slot operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TimeSlot = Literal["dawn", "morning", "noon", "afternoon", "evening", "night"]

TIME_SLOTS: list[TimeSlot] = ["dawn", "morning", "noon", "afternoon", "evening", "night"]

TIME_SLOT_LABELS: dict[str, str] = {
    "dawn": "黎明",
    "morning": "上午",
    "noon": "正午",
    "afternoon": "午后",
    "evening": "傍晚",
    "night": "深夜",
}

MessageRole = Literal["user", "assistant", "system"]

MessageKind = Literal["chapter-change", "scene-transition", "event", "item"]

STAT_MIN = 0
STAT_MAX = 100


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class StatConfig(_Frozen):
    """A named numeric stat. `alias` is the word the narrator writes in markup."""

    key: str
    label: str
    alias: str
    color: str = "#999999"
    initial: int = 0
    hidden: bool = False


class Personality(_Frozen):
    core: str = ""
    speak_style: str = ""
    catchphrases: list[str] = Field(default_factory=list)


class Secret(_Frozen):
    true_self: str = ""
    hidden_motivation: str = ""
    past_trauma: str = ""


class StatRequirement(_Frozen):
    npc_id: str
    key: str
    min: int


class UnlockCondition(_Frozen):
    type: Literal["always", "chapter", "stat", "event"] = "always"
    chapter: int | None = None
    stat: StatRequirement | None = None
    event_id: str | None = None


class FavorLevel(_Frozen):
    range: tuple[int, int]
    label: str
    behavior: str


class Character(_Frozen):
    """An NPC. Runtime stat values live in GameState.npc_stats."""

    id: str
    name: str
    name_en: str = ""
    title: str = ""
    age: int = 0
    description: str = ""
    theme_color: str = "#999999"
    avatar: str = ""
    personality: Personality = Field(default_factory=Personality)
    stats: list[StatConfig] = Field(default_factory=list)
    unlock: UnlockCondition = Field(default_factory=UnlockCondition)
    secret: Secret = Field(default_factory=Secret)
    favor_levels: list[FavorLevel] = Field(default_factory=list)


class SceneAccess(_Frozen):
    time_slots: list[TimeSlot] | None = None
    required_item: str | None = None
    required_stat: StatRequirement | None = None
    required_event: str | None = None
    required_chapter: int | None = None


class Scene(_Frozen):
    id: str
    name: str
    icon: str = ""
    description: str = ""
    possible_characters: list[str] = Field(default_factory=list)
    searchable_areas: list[str] = Field(default_factory=list)
    background_image: str = ""
    access: SceneAccess | None = None


class Item(_Frozen):
    id: str
    name: str
    icon: str = ""
    description: str = ""
    type: Literal["permanent", "consumable", "key", "evidence"] = "permanent"


class StatRange(_Frozen):
    npc_id: str
    key: str
    min: int | None = None
    max: int | None = None


class EventTrigger(_Frozen):
    """Conjunctive trigger clauses. A missing clause leaves its dimension open."""

    month: int | None = None
    chapter: int | None = None
    stat: StatRange | None = None
    item: str | None = None
    event: str | None = None


class Event(_Frozen):
    id: str
    name: str
    description: str = ""
    type: Literal["forced", "conditional"]
    trigger: EventTrigger = Field(default_factory=EventTrigger)
    lock_player: bool = False
    chapter: int = 1


class Chapter(_Frozen):
    id: int
    name: str
    subtitle: str = ""
    month_range: tuple[int, int]
    theme: str = ""
    enter_text: str = ""
    main_goal: str = ""
    side_goal: str | None = None


class StatClause(_Frozen):
    target: str
    key: str
    min: int | None = None
    max: int | None = None


class EndingConditions(_Frozen):
    stats: list[StatClause] = Field(default_factory=list)
    items: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    events_not: list[str] = Field(default_factory=list)


class Ending(_Frozen):
    id: str
    name: str
    type: Literal["TE", "HE", "BE", "NE"]
    priority: int
    description: str = ""
    evaluation: str = ""
    epilogue: str = ""
    conditions: EndingConditions = Field(default_factory=EndingConditions)


class StoryInfo(_Frozen):
    title: str
    subtitle: str = ""
    genre: str = ""
    era: str = ""
    description: str = ""
    player_name: str = ""
    player_name_en: str = ""
    start_age: int = 0
    goals: list[str] = Field(default_factory=list)


class NewGameSetup(_Frozen):
    """Fixed starting position for a fresh game."""

    scene: str
    time_slot: TimeSlot = "morning"
    unlocked_characters: list[str] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=list)
    inventory: list[str] = Field(default_factory=list)
    player_stats: dict[str, int] = Field(default_factory=dict)
    choices: list[str] = Field(default_factory=list)
    record_title: str = ""
    record_content: str = ""


# ---------------------------------------------------------------------------
# Runtime state
# ---------------------------------------------------------------------------

def _message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:12]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    """A single entry in the session's message log.

    Typed (`kind` set) system entries are narration inserted by the engine and
    are never replayed to the model.
    """

    id: str = Field(default_factory=_message_id)
    role: MessageRole
    content: str
    kind: MessageKind | None = None
    character_id: str | None = None
    timestamp: int = Field(default_factory=_now_ms)


class StoryRecord(BaseModel):
    """A journal line shown to the player."""

    id: str = Field(default_factory=lambda: f"sr-{uuid.uuid4().hex[:12]}")
    month: int
    time_slot: str
    title: str
    content: str


class PlayerStats(BaseModel):
    health: int = 100
    insight: int = 0
    autonomy: int = 50
    hope: int = 50
    art_skill: int = 0


class GameState(BaseModel):
    """Complete mutable game state."""

    started: bool = False

    month: int = 1
    time_slot: TimeSlot = "morning"
    chapter: int = 1

    scene: str = ""
    character: str | None = None
    unlocked_characters: list[str] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=list)

    npc_stats: dict[str, dict[str, int]] = Field(default_factory=dict)
    player_stats: PlayerStats = Field(default_factory=PlayerStats)

    inventory: list[str] = Field(default_factory=list)
    triggered_events: list[str] = Field(default_factory=list)
    active_forced_event: str | None = None

    messages: list[Message] = Field(default_factory=list)
    history_summary: str = ""
    story_records: list[StoryRecord] = Field(default_factory=list)

    ending_id: str | None = None
    choices: list[str] = Field(default_factory=list)

    turn: int = 0
    chain_turn: int = -1

    def has_item(self, item_id: str) -> bool:
        return item_id in self.inventory

    def is_triggered(self, event_id: str) -> bool:
        return event_id in self.triggered_events

    def npc_stat(self, npc_id: str, key: str) -> int:
        """Current value of an NPC stat, 0 when unknown."""
        return self.npc_stats.get(npc_id, {}).get(key, 0)

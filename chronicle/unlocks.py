"""Unlock resolver — characters and scenes become available as the story moves.

Unlocking is monotonic: ids are only ever appended, and ids already unlocked
are skipped, so the pass is safe to run after every mutation.

Scene time-slot restrictions do not affect unlocking; they are checked when
the player tries to enter a scene (`scene_open_now`).
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from chronicle.catalog import Catalog
from chronicle.models import Character, GameState, Scene

logger = logging.getLogger(__name__)


class UnlockResult(BaseModel):
    characters: list[str] = Field(default_factory=list)
    scenes: list[str] = Field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.characters or self.scenes)


def character_unlockable(character: Character, state: GameState) -> bool:
    cond = character.unlock
    if cond.type == "always":
        return True
    if cond.type == "chapter":
        return cond.chapter is not None and state.chapter >= cond.chapter
    if cond.type == "stat":
        return cond.stat is not None and state.npc_stat(cond.stat.npc_id, cond.stat.key) >= cond.stat.min
    if cond.type == "event":
        return cond.event_id is not None and state.is_triggered(cond.event_id)
    return False


def scene_unlockable(scene: Scene, state: GameState) -> bool:
    access = scene.access
    if access is None:
        return True
    if access.required_chapter is not None and state.chapter < access.required_chapter:
        return False
    if access.required_item and not state.has_item(access.required_item):
        return False
    if access.required_event and not state.is_triggered(access.required_event):
        return False
    if access.required_stat:
        req = access.required_stat
        if state.npc_stat(req.npc_id, req.key) < req.min:
            return False
    return True


def scene_open_now(scene: Scene, state: GameState) -> bool:
    """Whether the scene may be entered in the current time slot."""
    if scene.access is None or not scene.access.time_slots:
        return True
    return state.time_slot in scene.access.time_slots


def resolve_unlocks(state: GameState, catalog: Catalog) -> UnlockResult:
    """Add every newly eligible character and scene id to the unlocked sets."""
    result = UnlockResult()

    for character in catalog.characters:
        if character.id in state.unlocked_characters:
            continue
        if character_unlockable(character, state):
            state.unlocked_characters.append(character.id)
            result.characters.append(character.id)

    for scene in catalog.scenes:
        if scene.id in state.unlocked_scenes:
            continue
        if scene_unlockable(scene, state):
            state.unlocked_scenes.append(scene.id)
            result.scenes.append(scene.id)

    if result:
        logger.debug("unlocked characters=%s scenes=%s", result.characters, result.scenes)
    return result

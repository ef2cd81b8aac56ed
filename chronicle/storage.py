"""JSON file save slot.

A single named slot holds the persisted subset of GameState as a versioned
record. There is no database — the slot is one JSON file under a configurable
base directory:

    {base}/
      saves/
        {slot}.json           ← SaveRecord
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from chronicle.config import Settings
from chronicle.models import GameState, Message, PlayerStats, StoryRecord, TimeSlot

logger = logging.getLogger(__name__)

SAVE_VERSION = 1
DEFAULT_SLOT = "chronicle-save-v1"


class SaveRecord(BaseModel):
    """Persisted fields of GameState; streaming buffers and UI state are excluded."""

    version: int = SAVE_VERSION
    month: int
    time_slot: TimeSlot
    chapter: int
    scene: str
    character: str | None = None
    unlocked_characters: list[str]
    unlocked_scenes: list[str]
    npc_stats: dict[str, dict[str, int]]
    player_stats: PlayerStats
    inventory: list[str]
    triggered_events: list[str]
    active_forced_event: str | None = None
    messages: list[Message] = Field(default_factory=list)
    history_summary: str = ""
    story_records: list[StoryRecord] = Field(default_factory=list)
    ending_id: str | None = None
    choices: list[str] = Field(default_factory=list)
    turn: int = 0

    @classmethod
    def from_state(
        cls, state: GameState, *, max_messages: int = 30, max_records: int = 50,
    ) -> "SaveRecord":
        data = state.model_dump(exclude={"started", "chain_turn", "messages", "story_records"})
        return cls(
            **data,
            messages=state.messages[-max_messages:] if max_messages else [],
            story_records=state.story_records[-max_records:] if max_records else [],
        )

    def to_state(self) -> GameState:
        data = self.model_dump(exclude={"version"})
        return GameState.model_validate({**data, "started": True})


class SaveStorage:
    def __init__(
        self,
        base_path: Path,
        slot: str = DEFAULT_SLOT,
        *,
        max_messages: int = 30,
        max_records: int = 50,
    ) -> None:
        self._dir = base_path / "saves"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._slot = slot
        self._max_messages = max_messages
        self._max_records = max_records

    @classmethod
    def from_settings(cls, base_path: Path, settings: Settings) -> SaveStorage:
        """Slot and retention limits taken from the stored settings."""
        return cls(
            base_path, settings.save_slot,
            max_messages=settings.save_messages, max_records=settings.save_records,
        )

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._dir / f"{self._slot}.json"

    # ------------------------------------------------------------------
    # Slot operations
    # ------------------------------------------------------------------

    def save(self, state: GameState) -> str:
        """Persist the state and return the written JSON blob."""
        record = SaveRecord.from_state(
            state, max_messages=self._max_messages, max_records=self._max_records,
        )
        blob = record.model_dump_json(indent=2)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(blob, encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("saved slot %s at month %d", self._slot, state.month)
        return blob

    def load(self) -> GameState | None:
        """Restore the saved state, or None when the slot is missing or unreadable."""
        if not self.path.is_file():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            record = SaveRecord.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError):
            logger.warning("Save slot %s is corrupt; treating as empty", self._slot, exc_info=True)
            return None
        if record.version > SAVE_VERSION:
            logger.warning("Save slot %s has unknown version %d", self._slot, record.version)
            return None
        return record.to_state()

    def has_save(self) -> bool:
        return self.path.is_file()

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

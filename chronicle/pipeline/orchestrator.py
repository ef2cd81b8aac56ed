"""Session orchestrator — runs one player turn end-to-end.

Turn flow (phases idle → awaiting-stream → applying-deltas → advancing-time):
  1. Compress the message log if it has grown past the threshold.
  2. Append the player message; build the system prompt + recent history.
     An active forced event is shown to the narrator for this turn only.
  3. Stream the narration. A failed or empty stream is replaced by an
     in-character filler line so the turn always completes.
  4. Parse the narration; apply stat deltas, item grants and event grants.
  5. Chain reactions → unlock pass → conditional events.
  6. Append the cleaned narration and set the choices offered.
  7. Advance the month: forced events, chapter narration, conditional
     events, unlock pass, ending check at the final month.
  8. Persist to the save slot.

Only one turn may be in flight. A turn still streaming when the session is
reset or reloaded completes into a discarded result and never touches the
new state.
"""

from __future__ import annotations

import logging
import random
from typing import Literal

from pydantic import BaseModel, Field

from chronicle import analytics
from chronicle.catalog import Catalog
from chronicle.compressor import compress_history
from chronicle.config import Settings
from chronicle.endings import resolve_ending
from chronicle.events import check_conditional_events, fire_forced_events, trigger_event
from chronicle.llm import ChatStream, Completion
from chronicle.models import (
    TIME_SLOT_LABELS,
    TIME_SLOTS,
    Ending,
    GameState,
    Message,
    PlayerStats,
    StoryRecord,
)
from chronicle.parser import MAX_CHOICES, ParsedNarration, fallback_choices, parse_narration
from chronicle.prompts import PromptError, build_chat_messages
from chronicle.stats import (
    adjust_npc_stat,
    adjust_player_stat,
    apply_chain_reactions,
    initial_npc_stats,
)
from chronicle.storage import SaveStorage
from chronicle.unlocks import UnlockResult, resolve_unlocks, scene_open_now

logger = logging.getLogger(__name__)

Phase = Literal["idle", "awaiting-stream", "applying-deltas", "advancing-time"]


class TurnRejected(RuntimeError):
    """Raised when an action arrives while a turn is running or the game is over."""


class TurnResult(BaseModel):
    narration: str
    choices: list[str]
    messages: list[Message] = Field(default_factory=list)
    parsed: ParsedNarration = Field(default_factory=ParsedNarration)
    forced_event: str | None = None
    crisis: bool = False
    hope_low: bool = False
    unlocked_characters: list[str] = Field(default_factory=list)
    unlocked_scenes: list[str] = Field(default_factory=list)
    fired_events: list[str] = Field(default_factory=list)
    ending: Ending | None = None
    stream_failed: bool = False
    save_failed: bool = False
    discarded: bool = False


class TimeAdvance(BaseModel):
    advanced: bool = False
    chapter_changed: bool = False
    fired_events: list[str] = Field(default_factory=list)
    unlocked: UnlockResult = Field(default_factory=UnlockResult)
    ending: Ending | None = None


def grant_item(state: GameState, catalog: Catalog, item_id: str) -> bool:
    """Add an item to the inventory once, announcing it in the log."""
    item = catalog.item(item_id)
    if item is None or state.has_item(item_id):
        return False
    state.inventory.append(item_id)
    state.messages.append(Message(
        role="system", kind="item",
        content=f"📦 获得道具：**{item.icon} {item.name}**\n\n{item.description}",
    ))
    return True


class Engine:
    """Owns one GameState and exposes the player actions on it.

    Args:
        catalog:    Story content.
        storage:    Save slot written after every turn.
        stream:     ChatStream used for narration.
        completion: Completion used for history summaries; None uses the
                    deterministic digest.
        settings:   Compression and history limits.
        rng:        Random source for filler lines.
    """

    def __init__(
        self,
        catalog: Catalog,
        storage: SaveStorage,
        stream: ChatStream,
        completion: Completion | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        template: str | None = None,
    ) -> None:
        self.catalog = catalog
        self.storage = storage
        self._stream = stream
        self._completion = completion
        self.settings = settings or Settings()
        self._rng = rng or random.Random()
        self._template = template
        self._state = GameState()
        self._phase: Phase = "idle"
        self._generation = 0
        self.streaming = ""

    @property
    def state(self) -> GameState:
        return self._state

    def use_llm(self, stream: ChatStream, completion: Completion | None = None) -> None:
        """Swap the model backend; takes effect from the next turn."""
        self._stream = stream
        self._completion = completion

    @property
    def phase(self) -> Phase:
        return self._phase

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def new_game(self) -> GameState:
        catalog = self.catalog
        setup = catalog.new_game
        chapter = catalog.chapter_for_month(1)

        player = {s.key: s.initial for s in catalog.player_stats}
        player.update(setup.player_stats)

        state = GameState(
            started=True,
            month=1,
            time_slot=setup.time_slot,
            chapter=chapter.id,
            scene=setup.scene,
            unlocked_characters=list(setup.unlocked_characters),
            unlocked_scenes=list(setup.unlocked_scenes),
            npc_stats=initial_npc_stats(catalog.characters),
            player_stats=PlayerStats(**player),
            inventory=list(setup.inventory),
            choices=list(setup.choices),
        )
        state.messages.append(Message(role="system", content=chapter.enter_text))
        state.story_records.append(StoryRecord(
            month=1,
            time_slot=TIME_SLOT_LABELS[state.time_slot],
            title=setup.record_title or chapter.subtitle,
            content=setup.record_content or chapter.enter_text,
        ))

        self._replace(state)
        analytics.track_game_start()
        return state

    def reset(self) -> None:
        """Return to title. A turn still in flight is discarded when it finishes."""
        self._replace(GameState())

    def load(self) -> bool:
        state = self.storage.load()
        if state is None:
            return False
        self._replace(state)
        analytics.track_game_continue()
        return True

    def save(self) -> str:
        return self.storage.save(self._state)

    def has_save(self) -> bool:
        return self.storage.has_save()

    def clear_save(self) -> None:
        self.storage.clear()

    def _replace(self, state: GameState) -> None:
        self._generation += 1
        self._state = state
        self._phase = "idle"
        self.streaming = ""

    # ------------------------------------------------------------------
    # Focus
    # ------------------------------------------------------------------

    def _require_idle(self) -> None:
        if self._phase != "idle":
            raise TurnRejected("A turn is in progress")

    def select_character(self, character_id: str | None) -> bool:
        self._require_idle()
        if character_id is not None and character_id not in self._state.unlocked_characters:
            return False
        self._state.character = character_id
        return True

    def select_scene(self, scene_id: str) -> bool:
        """Move to an unlocked scene that is open in the current time slot."""
        self._require_idle()
        state = self._state
        scene = self.catalog.scene(scene_id)
        if scene is None or scene_id not in state.unlocked_scenes or state.scene == scene_id:
            return False
        if not scene_open_now(scene, state):
            logger.debug("scene %s closed during %s", scene_id, state.time_slot)
            return False

        state.scene = scene_id
        state.character = None
        state.messages.append(Message(
            role="system", kind="scene-transition",
            content=f"你来到了{scene.name}。\n\n{scene.description}",
        ))
        analytics.track_scene_enter(scene_id)
        return True

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def advance_month(self) -> TimeAdvance:
        state = self._state
        catalog = self.catalog
        result = TimeAdvance()

        if state.month >= catalog.max_months:
            result.ending = self.check_ending()
            return result

        state.month += 1
        state.time_slot = TIME_SLOTS[(TIME_SLOTS.index(state.time_slot) + 1) % len(TIME_SLOTS)]
        result.advanced = True
        analytics.track_time_advance(state.month, TIME_SLOT_LABELS[state.time_slot])

        chapter = catalog.chapter_for_month(state.month)
        if chapter.id != state.chapter:
            state.chapter = chapter.id
            result.chapter_changed = True
            state.messages.append(Message(
                role="system", kind="chapter-change",
                content=f"— {chapter.name}「{chapter.subtitle}」—\n\n{chapter.enter_text}",
            ))
            state.story_records.append(StoryRecord(
                month=state.month,
                time_slot=TIME_SLOT_LABELS[state.time_slot],
                title=f"进入{chapter.name}",
                content=chapter.subtitle,
            ))
            analytics.track_chapter_enter(chapter.id)

        result.fired_events = fire_forced_events(state, catalog)
        result.fired_events += check_conditional_events(state, catalog)
        result.unlocked = resolve_unlocks(state, catalog)

        if state.month >= catalog.max_months:
            result.ending = self.check_ending()
        return result

    def check_ending(self) -> Ending:
        return resolve_ending(self._state, self.catalog)

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> TurnResult:
        state = self._state
        if self._phase != "idle":
            raise TurnRejected("A turn is already in progress")
        if not state.started:
            raise TurnRejected("No game in progress")
        if state.ending_id is not None:
            raise TurnRejected("The story has ended")

        generation = self._generation
        self._phase = "awaiting-stream"
        try:
            return await self._run_turn(state, text, generation)
        finally:
            if generation == self._generation:
                self._phase = "idle"
                self.streaming = ""

    async def _run_turn(self, state: GameState, text: str, generation: int) -> TurnResult:
        catalog = self.catalog
        s = self.settings

        await compress_history(
            state, self._completion,
            threshold=s.compress_threshold, keep=s.compress_keep, budget=s.summary_budget,
        )
        if generation != self._generation:
            return self._discarded()

        start = len(state.messages)
        state.turn += 1
        state.messages.append(Message(role="user", content=text))
        self.streaming = ""

        forced_event = state.active_forced_event
        narration, failed = await self._narrate(state)
        state.active_forced_event = None
        if generation != self._generation:
            logger.info("session replaced during turn %d; discarding narration", state.turn)
            return self._discarded()

        # ── applying deltas ──
        self._phase = "applying-deltas"
        parsed = parse_narration(narration, catalog)
        clean = parsed.clean_text or self._filler(state, failed)

        for change in parsed.npc_changes:
            adjust_npc_stat(state, change.npc_id, change.key, change.delta)
        for change in parsed.player_changes:
            adjust_player_stat(state, change.key, change.delta)
        for item_id in parsed.item_grants:
            grant_item(state, catalog, item_id)
        fired = [e for e in parsed.event_grants if trigger_event(state, catalog, e)]

        chain = apply_chain_reactions(state)
        unlocked = resolve_unlocks(state, catalog)
        fired += check_conditional_events(state, catalog)

        state.messages.append(Message(
            role="assistant", content=clean,
            character_id=parsed.speaker_id or state.character,
        ))
        choices = parsed.choices if len(parsed.choices) >= 2 else fallback_choices(state, catalog)
        state.choices = choices[:MAX_CHOICES]
        state.story_records.append(StoryRecord(
            month=state.month,
            time_slot=TIME_SLOT_LABELS[state.time_slot],
            title=text[:20] + ("..." if len(text) > 20 else ""),
            content=clean[:100] + ("..." if len(clean) > 100 else ""),
        ))

        # ── advancing time ──
        self._phase = "advancing-time"
        advance = self.advance_month()
        fired += advance.fired_events

        save_failed = False
        try:
            self.save()
        except OSError:
            logger.warning("Could not write save slot after turn %d", state.turn, exc_info=True)
            save_failed = True

        return TurnResult(
            narration=clean,
            choices=state.choices,
            messages=state.messages[start:],
            parsed=parsed,
            forced_event=forced_event,
            crisis=chain.crisis,
            hope_low=chain.hope_low,
            unlocked_characters=unlocked.characters + advance.unlocked.characters,
            unlocked_scenes=unlocked.scenes + advance.unlocked.scenes,
            fired_events=fired,
            ending=advance.ending,
            stream_failed=failed,
            save_failed=save_failed,
        )

    async def _narrate(self, state: GameState) -> tuple[str, bool]:
        """Stream the narration. Returns (text, failed)."""
        generation = self._generation

        def on_chunk(chunk: str) -> None:
            if generation == self._generation:
                self.streaming += chunk

        try:
            messages = build_chat_messages(
                state, self.catalog,
                history=self.settings.prompt_history, template=self._template,
            )
            text = await self._stream(messages, on_chunk)
        except PromptError:
            logger.exception("Narrator prompt failed to render")
            return self._filler(state, failed=True), True
        except Exception:
            logger.warning("Narration stream failed; using fallback line", exc_info=True)
            return self._filler(state, failed=True), True

        if not text or not text.strip():
            logger.info("Narration stream returned no text; using filler line")
            return self._filler(state, failed=False), False
        return text, False

    def _filler(self, state: GameState, failed: bool) -> str:
        lines = self.catalog.fallback_lines
        character = self.catalog.character(state.character)
        if character is not None:
            pool = (lines.character_error if failed else lines.character) or lines.character
            if pool:
                return self._rng.choice(pool).format(name=character.name)
        pool = (lines.ambient_error if failed else lines.ambient) or lines.ambient
        return self._rng.choice(pool) if pool else "……"

    def _discarded(self) -> TurnResult:
        return TurnResult(narration="", choices=[], discarded=True)

"""Event trigger engine.

Each event moves once from untriggered to triggered and never back.

  forced       fires when the month counter equals trigger.month
  conditional  fires the first time every present trigger clause holds
               (chapter >=, month >=, stat within [min, max], item held,
               prerequisite event triggered)

Firing appends an event narration to the log and a journal record.
"""

from __future__ import annotations

import logging

from chronicle.catalog import Catalog
from chronicle.models import TIME_SLOT_LABELS, Event, GameState, Message, StoryRecord

logger = logging.getLogger(__name__)


def event_message(event: Event) -> str:
    return f"📜 事件触发：**{event.name}**\n\n{event.description}"


def trigger_event(state: GameState, catalog: Catalog, event_id: str) -> bool:
    """Mark an event triggered. Unknown or already-triggered ids are ignored."""
    event = catalog.event(event_id)
    if event is None or state.is_triggered(event_id):
        return False

    state.triggered_events.append(event_id)
    state.messages.append(Message(role="system", kind="event", content=event_message(event)))
    state.story_records.append(StoryRecord(
        month=state.month,
        time_slot=TIME_SLOT_LABELS[state.time_slot],
        title=event.name,
        content=event.description,
    ))
    logger.info("event %s triggered at month %d", event_id, state.month)
    return True


def fire_forced_events(state: GameState, catalog: Catalog) -> list[str]:
    """Fire forced events bound to the current month.

    Player-locking events become the active forced event.
    """
    fired: list[str] = []
    for event in catalog.events:
        if event.type != "forced" or event.trigger.month != state.month:
            continue
        if trigger_event(state, catalog, event.id):
            fired.append(event.id)
            if event.lock_player:
                state.active_forced_event = event.id
    return fired


def conditions_hold(event: Event, state: GameState) -> bool:
    t = event.trigger
    if t.chapter is not None and state.chapter < t.chapter:
        return False
    if t.month is not None and state.month < t.month:
        return False
    if t.stat is not None:
        value = state.npc_stat(t.stat.npc_id, t.stat.key)
        if t.stat.min is not None and value < t.stat.min:
            return False
        if t.stat.max is not None and value > t.stat.max:
            return False
    if t.item and not state.has_item(t.item):
        return False
    if t.event and not state.is_triggered(t.event):
        return False
    return True


def check_conditional_events(state: GameState, catalog: Catalog) -> list[str]:
    """One pass over the conditional events in catalog order.

    Every eligible event fires; an event firing earlier in the pass counts
    as triggered for the prerequisite checks of later ones.
    """
    fired: list[str] = []
    for event in catalog.events:
        if event.type != "conditional" or state.is_triggered(event.id):
            continue
        if conditions_hold(event, state) and trigger_event(state, catalog, event.id):
            fired.append(event.id)
    return fired

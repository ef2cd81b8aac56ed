"""Ending resolution — first match by priority, never best match."""

from __future__ import annotations

import logging

from chronicle import analytics
from chronicle.catalog import Catalog
from chronicle.models import Ending, GameState

logger = logging.getLogger(__name__)


def ending_matches(ending: Ending, state: GameState) -> bool:
    """True when every clause of the ending's condition set holds."""
    c = ending.conditions
    for clause in c.stats:
        value = state.npc_stat(clause.target, clause.key)
        if clause.min is not None and value < clause.min:
            return False
        if clause.max is not None and value > clause.max:
            return False
    if any(not state.has_item(item_id) for item_id in c.items):
        return False
    if any(not state.is_triggered(event_id) for event_id in c.events):
        return False
    if any(state.is_triggered(event_id) for event_id in c.events_not):
        return False
    return True


def resolve_ending(state: GameState, catalog: Catalog) -> Ending:
    """Select the terminal ending and record it on the state.

    An ending already recorded is returned unchanged. Endings are tried in
    ascending priority; the catalog's fallback ending is used when none match.
    """
    if state.ending_id is not None:
        return catalog.ending(state.ending_id) or catalog.ending(catalog.fallback_ending)

    for ending in sorted(catalog.endings, key=lambda e: e.priority):
        if ending_matches(ending, state):
            break
    else:
        ending = catalog.ending(catalog.fallback_ending)
        logger.debug("no ending matched, using fallback %s", ending.id)

    state.ending_id = ending.id
    analytics.track_ending_reached(ending.id)
    logger.info("ending %s (%s) reached at month %d", ending.id, ending.name, state.month)
    return ending

"""Stat model — clamped adjustments and chain reactions.

Every stat lives in [0, 100]. Adjustments against an unknown target or key
are no-ops so that malformed narrator markup can never fail a turn.

Chain reactions run once per turn, after the raw deltas:
  possessiveness >= 80            → that character's trust -5
  threat >= 70 and another
  character's trust <= 20         → crisis (reported, read by ending resolution)
  player hope <= 20               → mental crisis signal
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from chronicle import analytics
from chronicle.models import STAT_MAX, STAT_MIN, Character, FavorLevel, GameState, PlayerStats

logger = logging.getLogger(__name__)

POSSESSIVENESS_LIMIT = 80
POSSESSIVENESS_TRUST_PENALTY = 5
THREAT_CRISIS = 70
TRUST_CRISIS = 20
HOPE_CRISIS = 20


def clamp(value: int, lo: int = STAT_MIN, hi: int = STAT_MAX) -> int:
    return max(lo, min(hi, value))


def adjust_npc_stat(state: GameState, npc_id: str, key: str, delta: int) -> int | None:
    """Apply `delta` to an NPC stat and return the clamped value, or None if unknown."""
    stats = state.npc_stats.get(npc_id)
    if stats is None or key not in stats:
        logger.debug("ignoring delta for unknown stat %s.%s", npc_id, key)
        return None
    stats[key] = clamp(stats[key] + delta)
    return stats[key]


def adjust_player_stat(state: GameState, key: str, delta: int) -> int | None:
    """Apply `delta` to a player stat and return the clamped value, or None if unknown."""
    if key not in PlayerStats.model_fields:
        logger.debug("ignoring delta for unknown player stat %s", key)
        return None
    value = clamp(getattr(state.player_stats, key) + delta)
    setattr(state.player_stats, key, value)
    return value


class ChainReport(BaseModel):
    crisis: bool = False
    hope_low: bool = False
    applied: bool = True


def apply_chain_reactions(state: GameState) -> ChainReport:
    """Run the chain-reaction rules for the current turn.

    Keyed on `state.turn`: calling this again within the same turn changes
    nothing and returns a report with `applied=False`.
    """
    if state.chain_turn == state.turn:
        return ChainReport(
            crisis=has_crisis(state),
            hope_low=state.player_stats.hope <= HOPE_CRISIS,
            applied=False,
        )
    state.chain_turn = state.turn

    for npc_id, stats in state.npc_stats.items():
        if stats.get("possessiveness", 0) >= POSSESSIVENESS_LIMIT and "trust" in stats:
            stats["trust"] = clamp(stats["trust"] - POSSESSIVENESS_TRUST_PENALTY)
            logger.debug("chain: %s possessiveness lowers trust to %d", npc_id, stats["trust"])

    report = ChainReport(crisis=has_crisis(state))
    if report.crisis:
        logger.info("chain: crisis condition holds at month %d", state.month)

    if state.player_stats.hope <= HOPE_CRISIS:
        report.hope_low = True
        analytics.track_mental_crisis(state.player_stats.hope)
    return report


def has_crisis(state: GameState) -> bool:
    """True when one character's threat is high while another's trust is low."""
    for threat_id, stats in state.npc_stats.items():
        if stats.get("threat", 0) < THREAT_CRISIS:
            continue
        for trust_id, other in state.npc_stats.items():
            if trust_id != threat_id and "trust" in other and other["trust"] <= TRUST_CRISIS:
                return True
    return False


def favor_level(character: Character, key: str, value: int) -> FavorLevel | None:
    """The favor band for `value`, only defined for the character's first stat."""
    if not character.stats or key != character.stats[0].key:
        return None
    for level in character.favor_levels:
        lo, hi = level.range
        if lo <= value <= hi:
            return level
    return None


def initial_npc_stats(characters: list[Character]) -> dict[str, dict[str, int]]:
    return {c.id: {s.key: clamp(s.initial) for s in c.stats} for c in characters}

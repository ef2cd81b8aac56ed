"""Tests for chronicle.stats — clamping and chain reactions."""

import logging

import pytest

from chronicle.models import GameState
from chronicle.stats import (
    adjust_npc_stat,
    adjust_player_stat,
    apply_chain_reactions,
    clamp,
    favor_level,
    has_crisis,
    initial_npc_stats,
)


@pytest.fixture
def state(catalog) -> GameState:
    return GameState(started=True, npc_stats=initial_npc_stats(catalog.characters))


# ── Clamping ─────────────────────────────────────────────────


@pytest.mark.parametrize("start", [0, 1, 50, 99, 100])
@pytest.mark.parametrize("delta", [-1000, -101, -1, 0, 1, 101, 1000])
def test_npc_stat_always_in_range(state, start, delta):
    state.npc_stats["kallias"]["favor"] = start
    value = adjust_npc_stat(state, "kallias", "favor", delta)
    assert 0 <= value <= 100
    assert value == clamp(start + delta)


@pytest.mark.parametrize("delta", [-500, -30, 30, 500])
def test_player_stat_always_in_range(state, delta):
    value = adjust_player_stat(state, "hope", delta)
    assert 0 <= value <= 100
    assert state.player_stats.hope == value


def test_unknown_npc_is_noop(state):
    before = state.model_dump()
    assert adjust_npc_stat(state, "socrates", "favor", 5) is None
    assert state.model_dump() == before


def test_unknown_key_is_noop(state):
    assert adjust_npc_stat(state, "philokles", "favor", 5) is None
    assert "favor" not in state.npc_stats["philokles"]


def test_unknown_player_key_is_noop(state):
    assert adjust_player_stat(state, "charm", 5) is None


def test_initial_stats_from_catalog(catalog):
    stats = initial_npc_stats(catalog.characters)
    assert stats["kallias"] == {"favor": 50, "trust": 30, "possessiveness": 60}
    assert stats["philokles"] == {"threat": 0}


# ── Chain reactions ──────────────────────────────────────────


def test_possessiveness_lowers_trust(state):
    state.turn = 1
    state.npc_stats["kallias"]["possessiveness"] = 80
    apply_chain_reactions(state)
    assert state.npc_stats["kallias"]["trust"] == 25


def test_possessiveness_below_limit_does_nothing(state):
    state.turn = 1
    state.npc_stats["kallias"]["possessiveness"] = 79
    apply_chain_reactions(state)
    assert state.npc_stats["kallias"]["trust"] == 30


def test_trust_penalty_clamps_at_zero(state):
    state.turn = 1
    state.npc_stats["kallias"].update(possessiveness=100, trust=3)
    apply_chain_reactions(state)
    assert state.npc_stats["kallias"]["trust"] == 0


def test_chain_reactions_idempotent_within_turn(state):
    state.turn = 4
    state.npc_stats["kallias"]["possessiveness"] = 90
    first = apply_chain_reactions(state)
    after_first = state.model_dump()
    second = apply_chain_reactions(state)

    assert first.applied is True
    assert second.applied is False
    assert state.model_dump() == after_first


def test_chain_reactions_run_again_next_turn(state):
    state.turn = 1
    state.npc_stats["kallias"]["possessiveness"] = 90
    apply_chain_reactions(state)
    state.turn = 2
    apply_chain_reactions(state)
    assert state.npc_stats["kallias"]["trust"] == 20


def test_crisis_needs_threat_and_other_low_trust(state):
    state.npc_stats["philokles"]["threat"] = 70
    state.npc_stats["kallias"]["trust"] = 20
    assert has_crisis(state)

    state.npc_stats["kallias"]["trust"] = 21
    state.npc_stats["dionysios"]["trust"] = 50
    assert not has_crisis(state)


def test_crisis_reported_without_mutation(state):
    state.turn = 1
    state.npc_stats["philokles"]["threat"] = 75
    state.npc_stats["dionysios"]["trust"] = 10
    before = {k: dict(v) for k, v in state.npc_stats.items()}
    report = apply_chain_reactions(state)
    assert report.crisis is True
    assert report.model_dump(include={"crisis", "applied"}) == {"crisis": True, "applied": True}
    assert state.npc_stats == before


def test_low_hope_signal(state, caplog):
    state.turn = 1
    state.player_stats.hope = 20
    with caplog.at_level(logging.INFO, logger="chronicle.analytics"):
        report = apply_chain_reactions(state)
    assert report.hope_low is True
    assert any(getattr(r, "event", None) == "mental_crisis" for r in caplog.records)


# ── Favor levels ─────────────────────────────────────────────


def test_favor_level_on_primary_stat(catalog):
    kallias = catalog.character("kallias")
    assert favor_level(kallias, "favor", 60).label == "器重"
    assert favor_level(kallias, "favor", 0).label == "冷漠"


def test_favor_level_only_for_first_stat(catalog):
    kallias = catalog.character("kallias")
    assert favor_level(kallias, "trust", 60) is None

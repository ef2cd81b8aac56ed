"""Handlebars prompt rendering for the narrator."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pybars

from chronicle.catalog import PRESETS_DIR, Catalog
from chronicle.llm import ChatMessage
from chronicle.models import TIME_SLOT_LABELS, GameState
from chronicle.stats import favor_level

NARRATOR_TEMPLATE_PATH = PRESETS_DIR / "narrator.hbs"

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}} — iterate over the first N items."""
    result = []
    for item in list(items or [])[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items or [])[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def load_template(path: Path = NARRATOR_TEMPLATE_PATH) -> str:
    return path.read_text(encoding="utf-8")


def build_context(state: GameState, catalog: Catalog) -> dict[str, Any]:
    """Assemble template variables from catalog + current state."""
    chapter = catalog.chapter_for_month(state.month)
    scene = catalog.scene(state.scene)

    player_stats = "、".join(
        f"{s.label}:{getattr(state.player_stats, s.key)}"
        for s in catalog.player_stats
        if not s.hidden
    )

    npcs = []
    for npc_id in state.unlocked_characters:
        c = catalog.character(npc_id)
        if c is None:
            continue
        npcs.append({
            "name": c.name,
            "title": c.title,
            "stats": " ".join(f"{s.label}:{state.npc_stat(c.id, s.key)}" for s in c.stats),
        })

    events = "、".join(
        e.name for e in (catalog.event(i) for i in state.triggered_events) if e is not None
    )
    items = "、".join(
        f"{i.icon}{i.name}" for i in (catalog.item(i) for i in state.inventory) if i is not None
    )

    ctx: dict[str, Any] = {
        "story": catalog.story.model_dump(),
        "player_subject": catalog.player_subject,
        "example_name": catalog.characters[0].name if catalog.characters else "",
        "time": catalog.time_display(state.month).model_dump(),
        "time_slot": TIME_SLOT_LABELS[state.time_slot],
        "chapter": chapter.model_dump(),
        "scene": scene.model_dump() if scene else {"name": state.scene, "description": ""},
        "player_stats": player_stats,
        "npcs": npcs,
        "events": events,
        "items": items,
        "all_items": "、".join(i.name for i in catalog.items),
        "all_events": "、".join(e.name for e in catalog.events if e.type == "conditional"),
        "records": [r.model_dump() for r in state.story_records],
        "summary": state.history_summary,
    }

    forced = catalog.event(state.active_forced_event) if state.active_forced_event else None
    if forced is not None:
        ctx["forced_event"] = forced.model_dump()

    char = catalog.character(state.character)
    if char is not None:
        stat_parts = []
        for s in char.stats:
            value = state.npc_stat(char.id, s.key)
            level = favor_level(char, s.key, value)
            stat_parts.append(f"{s.label}: {value}" + (f" ({level.label})" if level else ""))
        primary = char.stats[0].key if char.stats else ""
        level = favor_level(char, primary, state.npc_stat(char.id, primary))
        ctx["char"] = {
            **char.model_dump(),
            "stats": "、".join(stat_parts),
            "level": level.model_dump() if level else None,
        }

    return ctx


def build_system_prompt(state: GameState, catalog: Catalog, template: str | None = None) -> str:
    return render_prompt(template or load_template(), build_context(state, catalog))


def build_chat_messages(
    state: GameState,
    catalog: Catalog,
    *,
    history: int = 10,
    template: str | None = None,
) -> list[ChatMessage]:
    """System prompt followed by the most recent untyped log entries."""
    recent = [m for m in state.messages if m.kind is None][-history:]
    return [
        {"role": "system", "content": build_system_prompt(state, catalog, template)},
        *({"role": m.role, "content": m.content} for m in recent),
    ]

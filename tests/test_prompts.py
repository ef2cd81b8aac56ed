"""Tests for Handlebars prompt rendering: template compilation, context building,
custom helpers (take, last), and chat message assembly."""

import pytest

from chronicle.models import GameState, Message, StoryRecord
from chronicle.prompts import (
    PromptError,
    build_chat_messages,
    build_context,
    build_system_prompt,
    render_prompt,
)
from chronicle.stats import initial_npc_stats


@pytest.fixture
def state(catalog) -> GameState:
    return GameState(
        started=True,
        scene="bedroom",
        unlocked_characters=["kallias"],
        unlocked_scenes=["bedroom", "courtyard"],
        npc_stats=initial_npc_stats(catalog.characters),
        inventory=["white_robe"],
    )


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_missing_variable():
    assert render_prompt("Hello {{name}}!", {}) == "Hello !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


def test_take_helper():
    tpl = "{{#take items 2}}{{this}},{{/take}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "a,b,"


def test_last_helper():
    tpl = "{{#last items 2}}{{this}},{{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "b,c,"


# ── build_context ────────────────────────────────────────────


def test_context_time_and_scene(state, catalog):
    state.month = 14
    ctx = build_context(state, catalog)
    assert ctx["time"] == {"year": 2, "month_in_year": 2, "age": 19, "remaining": 46}
    assert ctx["chapter"]["id"] == 2
    assert ctx["scene"]["name"] == "学徒居室"
    assert ctx["time_slot"] == "上午"


def test_context_lists_unlocked_npcs_only(state, catalog):
    ctx = build_context(state, catalog)
    assert [n["name"] for n in ctx["npcs"]] == ["卡利阿斯"]
    assert "好感度:50" in ctx["npcs"][0]["stats"]


def test_context_items_and_events(state, catalog):
    state.triggered_events = ["kiln_accident"]
    ctx = build_context(state, catalog)
    assert ctx["items"] == "👘白色长袍"
    assert ctx["events"] == "窑火事故"


def test_context_focus_character_with_level(state, catalog):
    state.character = "kallias"
    ctx = build_context(state, catalog)
    assert ctx["char"]["name"] == "卡利阿斯"
    assert ctx["char"]["level"]["label"] == "关注"
    assert "好感度: 50 (关注)" in ctx["char"]["stats"]


def test_context_without_focus(state, catalog):
    assert "char" not in build_context(state, catalog)


def test_context_forced_event(state, catalog):
    state.active_forced_event = "first_symposium"
    ctx = build_context(state, catalog)
    assert ctx["forced_event"]["name"] == "首次酒会"


# ── build_system_prompt / build_chat_messages ────────────────


def test_system_prompt_renders_story_state(state, catalog):
    state.character = "kallias"
    state.history_summary = "你在陶坊度过了第一周。"
    state.story_records = [
        StoryRecord(month=1, time_slot="上午", title=f"记录{i}", content="...") for i in range(7)
    ]
    prompt = build_system_prompt(state, catalog)

    assert "青铜之契" in prompt
    assert "你在陶坊度过了第一周。" in prompt
    assert "【卡利阿斯】" in prompt
    assert "记录6" in prompt and "记录1" not in prompt
    assert "你是我最得意的作品" in prompt


def test_custom_template(state, catalog):
    assert build_system_prompt(state, catalog, template="{{{scene.name}}}") == "学徒居室"


def test_chat_messages_skip_typed_entries(state, catalog):
    state.messages = [
        Message(role="system", content="开场"),
        Message(role="system", kind="event", content="事件"),
        Message(role="user", content="你好"),
        Message(role="assistant", content="他点头。"),
    ]
    messages = build_chat_messages(state, catalog, template="SYS")
    assert messages == [
        {"role": "system", "content": "SYS"},
        {"role": "system", "content": "开场"},
        {"role": "user", "content": "你好"},
        {"role": "assistant", "content": "他点头。"},
    ]


def test_chat_messages_history_window(state, catalog):
    state.messages = [Message(role="user", content=str(i)) for i in range(12)]
    messages = build_chat_messages(state, catalog, history=3, template="SYS")
    assert [m["content"] for m in messages[1:]] == ["9", "10", "11"]

"""Narrator output parsing into state deltas, clean narration and choices.

Markup understood inside full-width 【】 or ASCII [] brackets:

  【卡利阿斯 好感度+5】    character stat delta (name / English name / id,
                           stat alias / label / key)
  【玩家 健康值-10】       player stat delta (reserved subject)
  【获得道具:书房钥匙】    item grant (name or id)
  【事件:深夜召见】        event grant (name or id)

A trailing block of 2–4 numbered (1.–4.) or lettered (A.–D.) lines is read
as the player's choices. Anything that does not resolve against the catalog
is dropped silently; parsing never raises.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from chronicle.catalog import Catalog, find_stat
from chronicle.models import GameState

STAT_RE = re.compile(r"[【\[]([^】\]]+?)\s+([^+\-＋－】\]]+?)\s*([+\-＋－])(\d+)[】\]]")
ITEM_RE = re.compile(r"[【\[]获得道具[：:]\s*([^】\]]+?)\s*[】\]]")
EVENT_RE = re.compile(r"[【\[]事件[：:]\s*([^】\]]+?)\s*[】\]]")
SPEAKER_RE = re.compile(r"^[【\[]([^】\]]+)[】\]]")

CHOICE_RE = re.compile(r"^(?:[1-4]|[A-Da-d])[.、．]\s*(.+)$")
CHOICE_INTRO_RE = re.compile(
    r"选择|选项|你可以|接下来|你的行动|choose|choice|option|you may|you can|what will you do",
    re.IGNORECASE,
)

MAX_CHOICES = 4
# A choice intro is a short line ending in a colon or question mark.
MAX_INTRO_LEN = 30
INTRO_ENDINGS = ("：", ":", "？", "?")


class NpcChange(BaseModel):
    npc_id: str
    key: str
    delta: int


class PlayerChange(BaseModel):
    key: str
    delta: int


class ParsedNarration(BaseModel):
    npc_changes: list[NpcChange] = Field(default_factory=list)
    player_changes: list[PlayerChange] = Field(default_factory=list)
    item_grants: list[str] = Field(default_factory=list)
    event_grants: list[str] = Field(default_factory=list)
    clean_text: str = ""
    choices: list[str] = Field(default_factory=list)
    speaker_id: str | None = None


def parse_narration(text: str, catalog: Catalog) -> ParsedNarration:
    """Parse one complete narrator response."""
    result = ParsedNarration()

    for match in STAT_RE.finditer(text):
        subject, stat_name, sign, amount = match.groups()
        delta = int(amount) * (-1 if sign in "-－" else 1)
        subject = subject.strip()
        if subject == catalog.player_subject:
            stat = catalog.find_player_stat(stat_name)
            if stat is not None:
                result.player_changes.append(PlayerChange(key=stat.key, delta=delta))
            continue
        character = catalog.find_character(subject)
        if character is None:
            continue
        stat = find_stat(character, stat_name)
        if stat is not None:
            result.npc_changes.append(NpcChange(npc_id=character.id, key=stat.key, delta=delta))

    for match in ITEM_RE.finditer(text):
        item = catalog.find_item(match.group(1))
        if item is not None and item.id not in result.item_grants:
            result.item_grants.append(item.id)

    for match in EVENT_RE.finditer(text):
        event = catalog.find_event(match.group(1))
        if event is not None and event.id not in result.event_grants:
            result.event_grants.append(event.id)

    result.speaker_id = detect_speaker(text, catalog)

    clean, choices = extract_choices(text)
    result.clean_text = strip_markup(clean)
    result.choices = choices
    return result


def extract_choices(content: str) -> tuple[str, list[str]]:
    """Split a trailing choice list off the narration.

    Scans backward over non-blank lines while they look like list entries.
    Fewer than two entries means no choices were offered and the content is
    returned untouched.
    """
    lines = content.split("\n")
    choices: list[str] = []
    start = len(lines)

    for i in range(len(lines) - 1, -1, -1):
        stripped = lines[i].strip()
        if not stripped:
            continue
        match = CHOICE_RE.match(stripped)
        if match is None:
            break
        choices.insert(0, match.group(1).strip())
        start = i

    if len(choices) < 2:
        return content, []

    cut = start
    if cut > 0 and _is_choice_intro(lines[cut - 1].strip()):
        cut -= 1
    if cut > 0 and not lines[cut - 1].strip():
        cut -= 1

    return "\n".join(lines[:cut]).strip(), choices[:MAX_CHOICES]


def _is_choice_intro(line: str) -> bool:
    return (
        len(line) <= MAX_INTRO_LEN
        and line[-1:] in INTRO_ENDINGS
        and CHOICE_INTRO_RE.search(line) is not None
    )


def strip_markup(text: str) -> str:
    """Remove stat/item/event markup; drop lines that held nothing else."""
    kept: list[str] = []
    for line in text.split("\n"):
        cleaned = EVENT_RE.sub("", ITEM_RE.sub("", STAT_RE.sub("", line)))
        if line.strip() and not cleaned.strip():
            continue
        kept.append(cleaned.rstrip())
    return "\n".join(kept).strip()


def detect_speaker(text: str, catalog: Catalog) -> str | None:
    """The character whose 【Name】 tag opens a line, else the first one named."""
    for line in text.split("\n"):
        match = SPEAKER_RE.match(line.strip())
        if match:
            character = catalog.find_character(match.group(1))
            if character is not None:
                return character.id
    for character in catalog.characters:
        if character.name in text:
            return character.id
    return None


def fallback_choices(state: GameState, catalog: Catalog) -> list[str]:
    """Deterministic choices when the narrator offered fewer than two."""
    character = catalog.character(state.character)
    if character is not None:
        return [
            f"继续和{character.name}交谈",
            f"向{character.name}询问信息",
            f"观察{character.name}的反应",
            "环顾四周",
        ]
    scene = catalog.scene(state.scene)
    return [
        f"探索{scene.name if scene else '周围'}",
        "与人交谈",
        "查看物品",
        "休息片刻",
    ]

"""Context compression — keeps the message log sent to the model bounded.

Once the log grows past `threshold` entries, everything but the most recent
`keep` entries is folded into `history_summary`. The summary buffer is capped
at `budget` characters, trimmed from the oldest end.
"""

from __future__ import annotations

import logging

from chronicle.llm import Completion
from chronicle.models import GameState, Message

logger = logging.getLogger(__name__)

COMPRESS_THRESHOLD = 15
KEEP_RECENT = 10
SUMMARY_BUDGET = 2000
EXCERPT_LENGTH = 80

SUMMARY_SYSTEM = (
    "你是一个角色扮演游戏的剧情记录员。请用第三人称过去时，"
    "把下面的对话记录压缩成不超过200字的剧情摘要，只保留关键事件、人物关系变化和玩家的重要决定。"
)


def digest(messages: list[Message]) -> str:
    """Deterministic summary: one short excerpt per entry.

    Untyped system entries carry nothing the summary needs.
    """
    return "\n".join(
        f"[{m.role}] {m.content[:EXCERPT_LENGTH]}"
        for m in messages
        if m.role != "system" or m.kind
    )


def append_summary(state: GameState, summary: str, budget: int = SUMMARY_BUDGET) -> None:
    combined = f"{state.history_summary}\n{summary}" if state.history_summary else summary
    state.history_summary = combined[-budget:]


async def compress_history(
    state: GameState,
    completion: Completion | None = None,
    *,
    threshold: int = COMPRESS_THRESHOLD,
    keep: int = KEEP_RECENT,
    budget: int = SUMMARY_BUDGET,
) -> bool:
    """Fold old messages into the summary. Returns True if the log was trimmed.

    Without a completion collaborator the deterministic digest is used. A
    failing completion keeps the previous summary; the log is still trimmed.
    """
    if len(state.messages) <= threshold:
        return False

    old = state.messages[:-keep]
    state.messages = state.messages[-keep:]

    if completion is None:
        summary = digest(old)
    else:
        transcript = "\n".join(f"[{m.role}] {m.content}" for m in old)
        try:
            summary = (await completion([
                {"role": "system", "content": SUMMARY_SYSTEM},
                {"role": "user", "content": transcript},
            ])).strip()
        except Exception:
            logger.warning("History summarisation failed; keeping previous summary", exc_info=True)
            return True

    if summary:
        append_summary(state, summary, budget)
    logger.debug(
        "compressed %d messages, summary now %d chars", len(old), len(state.history_summary),
    )
    return True

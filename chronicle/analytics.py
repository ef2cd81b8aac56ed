"""Gameplay signals.

Each signal is one INFO record on the `chronicle.analytics` logger with the
signal name and its payload under `extra`, so any handler can forward them.
"""

import logging

logger = logging.getLogger(__name__)


def _track(event: str, **payload) -> None:
    logger.info("%s %s", event, payload, extra={"event": event, "payload": payload})


def track_game_start() -> None:
    _track("game_start")


def track_game_continue() -> None:
    _track("game_continue")


def track_time_advance(month: int, time_slot: str) -> None:
    _track("time_advance", month=month, time_slot=time_slot)


def track_chapter_enter(chapter: int) -> None:
    _track("chapter_enter", chapter=chapter)


def track_scene_enter(scene_id: str) -> None:
    _track("scene_enter", scene=scene_id)


def track_ending_reached(ending_id: str) -> None:
    _track("ending_reached", ending=ending_id)


def track_mental_crisis(hope: int) -> None:
    _track("mental_crisis", hope=hope)

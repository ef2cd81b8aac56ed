"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from chronicle.models import GameState
from chronicle.pipeline import TurnResult


class TurnBody(BaseModel):
    message: str


class SceneBody(BaseModel):
    scene_id: str


class CharacterBody(BaseModel):
    character_id: str | None = None


class GameView(BaseModel):
    state: GameState
    phase: str
    has_save: bool


class TurnView(BaseModel):
    result: TurnResult
    state: GameState

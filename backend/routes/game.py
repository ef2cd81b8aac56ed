"""Catalog, session lifecycle, turn, focus and save-slot endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request

from chronicle.pipeline import Engine, TurnRejected

from .models import CharacterBody, GameView, SceneBody, TurnBody, TurnView

logger = logging.getLogger(__name__)

router = APIRouter()


def _engine(request: Request) -> Engine:
    return request.app.state.engine


def _view(engine: Engine) -> GameView:
    return GameView(state=engine.state, phase=engine.phase, has_save=engine.has_save())


@router.get("/catalog")
async def get_catalog(request: Request):
    """Story content: characters, scenes, items, events, chapters, endings."""
    return _engine(request).catalog


@router.get("/game")
async def get_game(request: Request):
    """Current session state."""
    return _view(_engine(request))


@router.post("/game/new")
async def new_game(request: Request):
    """Start a fresh game from the catalog's starting position."""
    engine = _engine(request)
    engine.new_game()
    return _view(engine)


@router.post("/game/reset")
async def reset_game(request: Request):
    """Return to title. The save slot is kept."""
    engine = _engine(request)
    engine.reset()
    return _view(engine)


@router.post("/game/turn")
async def take_turn(request: Request, body: TurnBody):
    """Send a player message and run one full turn."""
    engine = _engine(request)
    try:
        result = await engine.send_message(body.message)
    except TurnRejected as e:
        logger.info("Turn rejected: %s", e)
        raise HTTPException(409, str(e))
    return TurnView(result=result, state=engine.state)


@router.post("/game/scene")
async def select_scene(request: Request, body: SceneBody):
    """Move to another scene."""
    engine = _engine(request)
    if not engine.state.started:
        raise HTTPException(409, "No game in progress")
    if engine.catalog.scene(body.scene_id) is None:
        raise HTTPException(404, "Scene not found")
    try:
        moved = engine.select_scene(body.scene_id)
    except TurnRejected as e:
        raise HTTPException(409, str(e))
    if not moved:
        raise HTTPException(409, "Scene is not available now")
    return _view(engine)


@router.post("/game/character")
async def select_character(request: Request, body: CharacterBody):
    """Focus on an unlocked character, or clear the focus with null."""
    engine = _engine(request)
    if not engine.state.started:
        raise HTTPException(409, "No game in progress")
    if body.character_id is not None and engine.catalog.character(body.character_id) is None:
        raise HTTPException(404, "Character not found")
    try:
        focused = engine.select_character(body.character_id)
    except TurnRejected as e:
        raise HTTPException(409, str(e))
    if not focused:
        raise HTTPException(409, "Character is not unlocked")
    return _view(engine)


@router.post("/game/load")
async def load_game(request: Request):
    """Continue from the save slot."""
    engine = _engine(request)
    if not engine.load():
        raise HTTPException(404, "No saved game")
    return _view(engine)


@router.get("/game/save")
async def get_save(request: Request):
    """Whether a save exists, and its summary."""
    engine = _engine(request)
    saved = engine.storage.load()
    if saved is None:
        return {"exists": False}
    return {
        "exists": True,
        "month": saved.month,
        "chapter": saved.chapter,
        "ending_id": saved.ending_id,
    }


@router.delete("/game/save")
async def delete_save(request: Request):
    """Delete the save slot."""
    _engine(request).clear_save()
    return {"ok": True}

"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, config) and game (catalog, session
lifecycle, turns, focus, save slot). The engine lives on app.state.
"""

from fastapi import APIRouter

from .game import router as game_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(game_router)

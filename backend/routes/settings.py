"""Health check and settings endpoints."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from chronicle import config

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get engine settings (LLM connection, compression, save retention)."""
    return config.get_settings(request.app.state.data_dir)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update engine settings (partial merge). The LLM connection is rebuilt."""
    from backend.app import build_llm

    try:
        settings = config.update_settings(request.app.state.data_dir, body)
    except ValidationError as e:
        raise HTTPException(422, str(e))

    engine = request.app.state.engine
    llm = build_llm(settings)
    engine.settings = settings
    engine.use_llm(llm.stream, llm.complete)
    return settings

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from chronicle.catalog import Catalog, default_catalog
from chronicle.config import Settings, get_settings
from chronicle.llm import HttpLLM
from chronicle.pipeline import Engine
from chronicle.storage import SaveStorage

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


def build_llm(settings: Settings) -> HttpLLM:
    return HttpLLM(
        settings.llm_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
        temperature=settings.llm_temperature,
    )


def build_engine(data_dir: Path, settings: Settings, catalog: Catalog | None = None) -> Engine:
    llm = build_llm(settings)
    storage = SaveStorage.from_settings(data_dir, settings)
    return Engine(
        catalog or default_catalog(), storage,
        stream=llm.stream, completion=llm.complete, settings=settings,
    )


def create_app(data_dir: Path | None = None, engine: Engine | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    resolved.mkdir(parents=True, exist_ok=True)
    settings = get_settings(resolved)

    app = FastAPI(title="Chronicle")
    app.state.data_dir = resolved
    app.state.engine = engine or build_engine(resolved, settings)
    app.include_router(router, prefix="/api")

    logger.info("Chronicle data directory: %s", resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()

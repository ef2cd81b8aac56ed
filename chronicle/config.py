"""Engine settings (LLM connection, context compression, save retention).

Stored as config.json in the data directory. get_settings() returns the
defaults merged with stored values; environment variables override the LLM
connection fields so secrets can live in .env instead of on disk.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "CHRONICLE_LLM_URL": "llm_url",
    "CHRONICLE_LLM_KEY": "llm_api_key",
    "CHRONICLE_LLM_MODEL": "llm_model",
}


class Settings(BaseModel):
    llm_url: str = "http://localhost:8080"
    llm_api_key: str = ""
    llm_model: str = ""
    llm_timeout: float = 120.0
    llm_temperature: float = 0.8

    compress_threshold: int = 15
    compress_keep: int = 10
    summary_budget: int = 2000
    prompt_history: int = 10

    save_slot: str = "chronicle-save-v1"
    save_messages: int = 30
    save_records: int = 50


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _read_stored(data_dir: Path) -> dict[str, Any]:
    path = _config_path(data_dir)
    if not path.is_file():
        return {}
    try:
        stored = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Ignoring unreadable config %s", path)
        return {}
    return stored if isinstance(stored, dict) else {}


def get_settings(data_dir: Path) -> Settings:
    """Read settings, returning defaults merged with stored values and env overrides."""
    values = Settings().model_dump()
    for key, value in _read_stored(data_dir).items():
        if key in values:
            values[key] = value
    for env_name, key in ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[key] = env_value
    try:
        return Settings.model_validate(values)
    except ValidationError:
        logger.warning("Stored settings are invalid, using defaults", exc_info=True)
        return Settings()


def update_settings(data_dir: Path, fields: dict[str, Any]) -> Settings:
    """Merge fields into the stored config and persist. Returns the full settings.

    Unknown keys are ignored; invalid values raise ValidationError.
    """
    stored = _read_stored(data_dir)
    known = Settings.model_fields
    stored.update({k: v for k, v in fields.items() if k in known})
    Settings.model_validate({**Settings().model_dump(), **stored})
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(stored, indent=2))
    return get_settings(data_dir)

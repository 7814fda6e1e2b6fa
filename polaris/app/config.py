from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _env_int(key: str, default: int) -> int:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    v = _env_str(key)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    # Storage
    db_path: str

    # Logging
    log_level: str
    log_json: bool

    # LLM endpoint + model names
    llm_base_url: Optional[str]
    question_model: str
    blueprint_model: str
    max_blueprint_attempts: int

    # Answer validation thresholds
    min_completion_rate: float
    warn_completion_rate: float
    option_preview_limit: int

    @staticmethod
    def from_env(load_env_file: bool = True) -> "Settings":
        # Read configuration from environment variables (optionally seeded from .env).
        if load_env_file:
            load_dotenv()

        db_path = _env_str("POLARIS_DB_PATH", "data/polaris.db") or "data/polaris.db"

        # Create the parent directory if needed (do not create the DB file here).
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        return Settings(
            db_path=db_path,

            log_level=_env_str("POLARIS_LOG_LEVEL", "INFO") or "INFO",
            log_json=_env_bool("POLARIS_LOG_JSON", True),

            llm_base_url=_env_str("POLARIS_LLM_BASE_URL"),
            question_model=_env_str("POLARIS_MODEL_QUESTIONS", "gpt-4.1-mini") or "gpt-4.1-mini",
            blueprint_model=_env_str("POLARIS_MODEL_BLUEPRINT", "gpt-4.1") or "gpt-4.1",
            max_blueprint_attempts=max(1, _env_int("POLARIS_MAX_BLUEPRINT_ATTEMPTS", 2)),

            min_completion_rate=_env_float("POLARIS_MIN_COMPLETION_RATE", 50.0),
            warn_completion_rate=_env_float("POLARIS_WARN_COMPLETION_RATE", 80.0),
            option_preview_limit=max(1, _env_int("POLARIS_OPTION_PREVIEW_LIMIT", 5)),
        )

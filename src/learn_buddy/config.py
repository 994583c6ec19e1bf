# src/learn_buddy/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (without an API key the app runs on the
  offline generation backend).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "LEARNBUDDY"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- LLM / OpenRouter ----
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_model: str
    extra_headers: dict[str, str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float

    # ---- Identity / storage ----
    user_id: str | None
    local_mode: bool
    data_dir: Path
    documents_db_path: Path
    local_storage_path: Path
    local_storage_key: str

    # ---- UI timing ----
    new_flag_delay_seconds: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "Learn Buddy") or "Learn Buddy"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")
        llm_model = _env(_k("LLM_MODEL"), "google/gemini-2.0-flash-001").strip()

        extra_headers = {
            "HTTP-Referer": _env(_k("HTTP_REFERER"), "https://example.com"),
            "X-Title": _env(_k("APP_TITLE"), app_name),
        }

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/learn_buddy"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_model=llm_model,
            extra_headers=extra_headers,
            llm_connect_timeout_seconds=_env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0),
            llm_read_timeout_seconds=_env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 60.0),
            user_id=(_env(_k("USER_ID"), "").strip() or None),
            local_mode=_env_bool(_k("LOCAL_MODE"), True),
            data_dir=data_dir,
            documents_db_path=_env_path(_k("DOCUMENTS_DB_PATH"), data_dir / "documents.sqlite3"),
            local_storage_path=_env_path(_k("LOCAL_STORAGE_PATH"), data_dir / "local_storage.json"),
            local_storage_key=_env(_k("LOCAL_STORAGE_KEY"), "learn_buddy.tasks") or "learn_buddy.tasks",
            new_flag_delay_seconds=max(0.0, _env_float(_k("NEW_FLAG_DELAY_SECONDS"), 0.6)),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

# src/listing_notes/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Components take settings explicitly, so tests can pass a SimpleNamespace.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "LISTING"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables win over .env values.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


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

    # ---- Extraction service (OpenAI-compatible) ----
    api_key: Optional[str]
    base_url: str
    llm_models: List[str]
    extra_headers: Dict[str, str]
    llm_connect_timeout: float
    llm_read_timeout: float
    default_audio_mime: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    storage_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="房源随手记") or "房源随手记"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_key = _first_env(
            _k("API_KEY"),
            "OPENROUTER_API_KEY",
            "GEMINI_API_KEY",
            "API_KEY",
            default=None,
        )
        base_url = _env(_k("BASE_URL"), "https://openrouter.ai/api/v1")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        title = _env(_k("APP_TITLE"), "listing-notes")

        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(_k("LLM_MODELS"), ["google/gemini-2.5-flash"])

        # The service owns the real deadline; these only bound the HTTP transport.
        llm_connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 10.0)
        llm_read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 300.0)

        default_audio_mime = _env(_k("DEFAULT_AUDIO_MIME"), "audio/webm").strip() or "audio/webm"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/listing_notes"))
        storage_path = _env_path(_k("STORAGE_PATH"), data_dir / "local_storage.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_key=api_key,
            base_url=base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_connect_timeout=llm_connect_timeout,
            llm_read_timeout=llm_read_timeout,
            default_audio_mime=default_audio_mime,
            data_dir=data_dir,
            storage_path=storage_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS

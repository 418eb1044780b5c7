from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .gemini_client import DEFAULT_ENDPOINT, DEFAULT_MODEL

load_dotenv()


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class Settings:
    api_key: str
    model: str
    endpoint: str
    request_timeout: float
    app_id: str
    store_dir: Path
    owner_id: str
    save_debounce: float = 1.0
    chunk_size: int = 5
    chunk_cooldown: float = 1.5
    batch_retry_delay: float = 3.0
    single_retry_delay: float = 2.0
    summary_retry_delay: float = 5.0
    max_attempts: int = 3


def load_settings() -> Settings:
    return Settings(
        api_key=os.getenv("GEMINI_API_KEY", ""),
        model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        endpoint=os.getenv("GEMINI_ENDPOINT", DEFAULT_ENDPOINT),
        request_timeout=_parse_float(os.getenv("REQUEST_TIMEOUT"), 60.0),
        app_id=os.getenv("PPS_APP_ID", "default-app-id"),
        store_dir=Path(os.getenv("PPS_STORE_DIR", "./pps_store")),
        owner_id=os.getenv("PPS_OWNER_ID", "local-user"),
        save_debounce=_parse_float(os.getenv("SAVE_DEBOUNCE_SECONDS"), 1.0),
        chunk_size=max(1, _parse_int(os.getenv("BATCH_CHUNK_SIZE"), 5)),
        chunk_cooldown=_parse_float(os.getenv("CHUNK_COOLDOWN_SECONDS"), 1.5),
        batch_retry_delay=_parse_float(os.getenv("BATCH_RETRY_DELAY_SECONDS"), 3.0),
        single_retry_delay=_parse_float(os.getenv("SINGLE_RETRY_DELAY_SECONDS"), 2.0),
        summary_retry_delay=_parse_float(os.getenv("SUMMARY_RETRY_DELAY_SECONDS"), 5.0),
        max_attempts=max(1, _parse_int(os.getenv("MAX_ATTEMPTS"), 3)),
    )


def ensure_directories(settings: Settings) -> None:
    settings.store_dir.mkdir(parents=True, exist_ok=True)


def load_prompt_config(path: Path = Path("config/prompts.yaml")) -> Dict[str, Dict[str, Any]]:
    """Read per-field prompt overrides; a missing file means no overrides."""
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}
    fields = data.get("fields") if isinstance(data, dict) else None
    if not isinstance(fields, dict):
        return {}
    return {str(name): dict(values or {}) for name, values in fields.items()}

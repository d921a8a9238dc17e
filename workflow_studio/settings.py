from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_SQLITE_PATH = "data/workflow.db"
DEFAULT_STORAGE_KEY = "workflow-autosave"


@dataclass(slots=True)
class AppSettings:
    execution_delay_seconds: float = 0.5
    max_log_entries: int = 100
    max_history_size: int = 50
    sqlite_path: Path = Path(DEFAULT_SQLITE_PATH)
    storage_key: str = DEFAULT_STORAGE_KEY
    autosave_enabled: bool = True



def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default



def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default



def load_settings() -> AppSettings:
    load_dotenv()

    sqlite_path = Path(os.getenv("WORKFLOW_SQLITE_PATH", DEFAULT_SQLITE_PATH)).expanduser()
    storage_key = os.getenv("WORKFLOW_STORAGE_KEY", "").strip() or DEFAULT_STORAGE_KEY

    settings = AppSettings(
        execution_delay_seconds=max(0.0, _get_float("WORKFLOW_EXECUTION_DELAY_SECONDS", 0.5)),
        max_log_entries=max(1, _get_int("WORKFLOW_MAX_LOG_ENTRIES", 100)),
        max_history_size=max(2, _get_int("WORKFLOW_MAX_HISTORY_SIZE", 50)),
        sqlite_path=sqlite_path,
        storage_key=storage_key,
        autosave_enabled=_get_bool("WORKFLOW_AUTOSAVE", True),
    )

    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return settings

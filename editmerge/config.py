"""Configuration and constants for editmerge."""
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MERGE_STRATEGIES = ("auto", "local", "remote")

def get_app_data_dir() -> Path:
    """Get the application data directory for the current platform."""
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.getenv("APPDATA") or home / "AppData" / "Roaming") / "editmerge"
    elif sys.platform == "darwin":
        return home / "Library" / "Application Support" / "editmerge"
    return Path(os.getenv("XDG_CONFIG_HOME") or home / ".config") / "editmerge"

APP_DATA_DIR = get_app_data_dir()
APP_DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_DIR = APP_DATA_DIR / "logs"

SETTINGS_FILENAME = "settings.json"
SETTINGS_PATH = APP_DATA_DIR / SETTINGS_FILENAME

def load_json_file(path: Path | str, default: Any = None) -> Any:
    """Load a JSON file, returning default when it is missing or unreadable."""
    try:
        p = Path(path)
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load JSON {path}: {e}")
    return default

def save_json_file(path: Path | str, data: Any, indent: int = 2) -> bool:
    """Save data to a JSON file."""
    try:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        return True
    except OSError as e:
        logger.error(f"Failed to save JSON {path}: {e}")
        return False

def _load_settings() -> dict:
    data = load_json_file(SETTINGS_PATH)
    return data if isinstance(data, dict) else {}

def _save_settings(settings: dict) -> None:
    # Resolved at call time so tests can redirect SETTINGS_PATH
    save_json_file(sys.modules[__name__].SETTINGS_PATH, settings)

_settings = _load_settings()

API_KEY = (
    _settings.get("api_key")
    or os.environ.get("EDITMERGE_API_KEY")
    or os.environ.get("OPENROUTER_API_KEY")
    or os.environ.get("OPENAI_API_KEY")
    or ""
)
API_BASE_URL = _settings.get("api_base_url", "https://openrouter.ai/api/v1")

def update_core_settings(api_key: str, base_url: str) -> None:
    """Update and save the merge service credentials."""
    global API_KEY, API_BASE_URL

    _settings["api_key"] = api_key
    _settings["api_base_url"] = base_url
    _save_settings(_settings)

    API_KEY = api_key
    API_BASE_URL = base_url

class EditMergeConfig:
    """Tunables for merging, diffing and applying."""

    def __init__(self, settings: dict | None = None):
        s = _settings if settings is None else settings
        self._settings = s

        self.merge_model = s.get("merge_model", "openai/gpt-4o-mini")
        strategy = s.get("merge_strategy", "auto")
        self.merge_strategy = strategy if strategy in MERGE_STRATEGIES else "auto"
        self.ignore_whitespace = s.get("ignore_whitespace", False)

        self.editor_ready_retries = s.get("editor_ready_retries", 3)
        self.editor_ready_delay = s.get("editor_ready_delay", 0.3)
        self.pending_merge_timeout = s.get("pending_merge_timeout", 10.0)
        self.merge_workers = s.get("merge_workers", 4)

    def _persist(self, key: str, value: Any) -> None:
        self._settings[key] = value
        _save_settings(self._settings)

    def set_merge_model(self, model_name: str) -> None:
        self.merge_model = model_name
        self._persist("merge_model", model_name)

    def set_merge_strategy(self, strategy: str) -> None:
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy: {strategy}")
        self.merge_strategy = strategy
        self._persist("merge_strategy", strategy)

    def set_ignore_whitespace(self, enabled: bool) -> None:
        self.ignore_whitespace = enabled
        self._persist("ignore_whitespace", enabled)

    def set_editor_ready_retries(self, retries: int) -> None:
        self.editor_ready_retries = retries
        self._persist("editor_ready_retries", retries)

    def set_editor_ready_delay(self, delay: float) -> None:
        self.editor_ready_delay = delay
        self._persist("editor_ready_delay", delay)

    def set_pending_merge_timeout(self, timeout: float) -> None:
        self.pending_merge_timeout = timeout
        self._persist("pending_merge_timeout", timeout)

    def set_merge_workers(self, count: int) -> None:
        self.merge_workers = count
        self._persist("merge_workers", count)

config = EditMergeConfig()

"""Persisted client configuration."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Mapping, MutableMapping

CONFIG_DIR_NAME = "RetrievalChat"
DEFAULT_FILENAME = "settings.json"
BASE_URL_ENV = "RETRIEVALCHAT_BASE_URL"

BACKEND_SECTION = "backend"
ANSWER_SECTION = "answer"


def get_user_config_dir(app_name: str = CONFIG_DIR_NAME) -> Path:
    """Return the configuration directory for the current user.

    The directory is created on first use. On Windows the directory is
    under ``%APPDATA%``; otherwise the XDG base directory or ``~/.config``
    is used.
    """
    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    config_dir = base_dir / app_name
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


class ConfigManager:
    """Load and save the JSON settings file, one mapping per section."""

    def __init__(
        self,
        app_name: str = CONFIG_DIR_NAME,
        *,
        filename: str = DEFAULT_FILENAME,
    ) -> None:
        self.app_name = app_name
        self.config_dir = get_user_config_dir(app_name)
        self.config_path = self.config_dir / filename

    def load(self) -> dict[str, Any]:
        """Load configuration from disk.

        Returns an empty dictionary if the file is absent or does not hold a
        JSON object.
        """
        if not self.config_path.exists():
            return {}
        with self.config_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def save(self, data: Mapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        with self.config_path.open("w", encoding="utf-8") as fh:
            json.dump(dict(data), fh, indent=2, sort_keys=True)
            fh.write("\n")

    def load_section(self, section: str) -> dict[str, Any]:
        values = self.load().get(section)
        return dict(values) if isinstance(values, dict) else {}

    def save_section(self, section: str, values: MutableMapping[str, Any]) -> dict[str, Any]:
        """Replace ``section`` with ``values`` and return the full document."""
        current = self.load()
        current[section] = dict(values)
        self.save(current)
        return current

    def backend_url(self, default: str) -> str:
        """Return the backend URL, honouring the ``RETRIEVALCHAT_BASE_URL`` override."""
        override = os.getenv(BASE_URL_ENV, "").strip()
        if override:
            return override
        stored = self.load_section(BACKEND_SECTION).get("base_url")
        if isinstance(stored, str) and stored.strip():
            return stored.strip()
        return default

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ConfigManager(app_name={self.app_name!r}, path={self.config_path!s})"


__all__ = [
    "ANSWER_SECTION",
    "BACKEND_SECTION",
    "BASE_URL_ENV",
    "ConfigManager",
    "get_user_config_dir",
]

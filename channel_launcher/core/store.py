"""Persistent key/value store for launcher state.

Values are kept in a single JSON document written atomically
(temp file + os.replace) so an interrupted write never leaves a
truncated store behind.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog

from channel_launcher.core.errors import KeyNotFoundError

logger = structlog.get_logger()

# Keys shared between the orchestrator and its collaborators
GAME_INSTALL_DIR = "game_install_dir"
PATCHED = "patched"
PREDOWNLOADED_ALL = "predownloaded_all"


class KeyValueStore:
    """JSON-file backed key/value store.

    Args:
        path: Location of the JSON document
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("store_load_failed", path=str(self.path), error=str(e))
            return {}

        if not isinstance(raw, dict):
            logger.warning("store_invalid_format", type=type(raw).__name__)
            return {}
        return raw

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def has(self, key: str) -> bool:
        """Check whether a key is present."""
        return key in self._data

    def get(self, key: str) -> Any:
        """Get a stored value.

        Raises:
            KeyNotFoundError: If the key was never set or was deleted
        """
        if key not in self._data:
            raise KeyNotFoundError(key)
        return self._data[key]

    def get_or_default(self, key: str, default: Any = None) -> Any:
        """Get a stored value, returning default when absent."""
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a value and persist the store."""
        self._data[key] = value
        self._save()
        logger.debug("store_set", key=key)

    def delete(self, key: str) -> None:
        """Remove a key if present and persist the store."""
        if key not in self._data:
            return
        del self._data[key]
        self._save()
        logger.debug("store_delete", key=key)

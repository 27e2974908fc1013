"""
Durable key-value store backed by a single JSON file.

Holds the session snapshot, its state tag and small preferences
(onboarding flag, last selected duration). Writes are atomic so a crash
mid-save never leaves a half-written file behind.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class KeyValueStore:
    """
    JSON-file key-value store.

    Loading never raises: a missing, unreadable or corrupt file yields an
    empty store. Saving failures are logged and swallowed.
    """

    def __init__(self, data_file: Path):
        """
        Initialize the store and load existing data.

        Args:
            data_file: Path to the JSON file.
        """
        self.data_file = Path(data_file)
        self._lock = threading.Lock()
        self.data: Dict[str, Any] = self._load_data()

    def _load_data(self) -> Dict[str, Any]:
        if not self.data_file.exists():
            return {}
        try:
            with open(self.data_file, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to load store {self.data_file}: {e}. Starting fresh.")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Store {self.data_file} is not a JSON object. Starting fresh.")
            return {}
        return data

    def _save_data(self) -> None:
        """
        Save the store atomically (temp file in the same dir, then rename).

        Note: This method assumes the caller holds self._lock.
        """
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)

            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='focus_store_',
                dir=self.data_file.parent
            )

            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(self.data, f, indent=2)
                os.replace(temp_path, self.data_file)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

        except (IOError, OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save store {self.data_file}: {e}")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.data[key] = value
            self._save_data()

    def update(self, values: Dict[str, Any]) -> None:
        """Set several keys in a single write."""
        with self._lock:
            self.data.update(values)
            self._save_data()

    def remove(self, *keys: str) -> None:
        with self._lock:
            changed = False
            for key in keys:
                if key in self.data:
                    del self.data[key]
                    changed = True
            if changed:
                self._save_data()

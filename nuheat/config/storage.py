"""Durable key-value storage for persistent authentication.

Stores the cached NuHeat session token so it survives process restarts.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import DEFAULT_SESSION_FILENAME, SESSION_KEY

_LOGGER = logging.getLogger(__name__)


class KeyValueStore:
    """Flat string-keyed mapping persisted as a JSON file."""

    def __init__(self, storage_path: Path):
        """Initialize the store.

        Args:
            storage_path: Path to the JSON file backing this store
        """
        self.storage_path = Path(storage_path)
        self._data: Optional[Dict[str, Any]] = None
        self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Create storage directory if it doesn't exist."""
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

    def _load_all(self) -> Dict[str, Any]:
        """Load all stored values."""
        if not self.storage_path.exists():
            return {}
        try:
            with open(self.storage_path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            _LOGGER.warning("Ignoring unreadable store %s: %s", self.storage_path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_all(self, data: Dict[str, Any]):
        """Save all values to storage."""
        self._ensure_storage_dir()
        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.storage_path)

    def _cached(self) -> Dict[str, Any]:
        """File contents, read once; later reads never touch the disk."""
        if self._data is None:
            self._data = self._load_all()
        return self._data

    def _commit(self, data: Dict[str, Any]):
        # Memory only follows once the file write succeeded
        self._save_all(data)
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a stored value, or ``default`` when the key is absent."""
        return self._cached().get(key, default)

    def set(self, key: str, value: Any):
        """Store a value under ``key``, replacing any previous value."""
        data = dict(self._cached())
        data[key] = value
        self._commit(data)

    def delete(self, key: str):
        """Delete a stored value. Missing keys are ignored."""
        data = dict(self._cached())
        if key in data:
            del data[key]
            self._commit(data)

    def all(self) -> Dict[str, Any]:
        """Return a copy of every stored value."""
        return dict(self._cached())

    def clear(self):
        """Clear all stored values."""
        self._commit({})


class SessionStore(KeyValueStore):
    """Holds the single cached NuHeat session token."""

    DEFAULT_STORAGE_PATH = Path.cwd() / "storage" / DEFAULT_SESSION_FILENAME

    def __init__(self, storage_path: Optional[Path] = None):
        """Initialize session storage.

        Args:
            storage_path: Path to session file. Defaults to ./storage/session.json
        """
        super().__init__(storage_path or self.DEFAULT_STORAGE_PATH)

    def get_session(self) -> Optional[str]:
        """Return the cached session token, if any."""
        return self.get(SESSION_KEY) or None

    def save_session(self, session_id: str):
        """Persist a freshly issued session token."""
        self.set(SESSION_KEY, session_id)

    def clear_session(self):
        """Forget the cached session token."""
        self.delete(SESSION_KEY)

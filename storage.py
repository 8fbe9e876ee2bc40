"""Key-value persistence for worktrack.

Every value is a JSON-serializable blob stored under a string key. The
file-backed store keeps one ``<key>.json`` file per key and replaces it
atomically, so a crash mid-write leaves the previous value intact.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from errors import CorruptValueError, PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface of the persistence collaborator."""

    def get(self, key: str) -> Optional[Any]:
        """Return the value stored under key, or None if absent."""
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        """Delete key. Removing a missing key is not an error."""
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store. Values are kept as JSON text, like the file store."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key!r} is not JSON-serializable: {e}") from e

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """One JSON file per key inside a directory."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def ensure_dir(self) -> None:
        """Create the data directory if it doesn't exist."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create {self.directory}: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Corrupt JSON in %s: %s", path, e)
            raise CorruptValueError(f"Corrupt JSON in {path}: {e}") from e
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Write value using temp file + rename."""
        self.ensure_dir()
        path = self._path(key)
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=self.directory,
                prefix=f".{key}_",
                suffix=".json.tmp",
            )
            with os.fdopen(fd, "w") as f:
                json.dump(value, f, indent=2)
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save %s: %s", path, e)
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise PersistenceError(f"Failed to save {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to remove %s: %s", path, e)
            raise PersistenceError(f"Failed to remove {path}: {e}") from e

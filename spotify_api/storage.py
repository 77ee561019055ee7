"""Durable key/value storage for session state.

Plays the role a browser's localStorage plays for a web client: values must
outlive the process so a login started before the browser round trip can be
finished afterwards.
"""

import json
import logging
import os
import platform
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = os.path.join("data", "session.json")

ACCESS_TOKEN_KEY = "spotify_access_token"
TOKEN_EXPIRATION_KEY = "spotify_token_expiration"
PKCE_CONTEXT_KEY = "spotify_pkce_context"
GUEST_MODE_KEY = "spotify_guest_mode"

ALL_SESSION_KEYS = (
    ACCESS_TOKEN_KEY,
    TOKEN_EXPIRATION_KEY,
    PKCE_CONTEXT_KEY,
    GUEST_MODE_KEY,
)


class KeyValueStorage(ABC):
    """Minimal durable mapping of string keys to JSON-serializable values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    def reload(self) -> None:
        """Pick up writes made outside this object. No-op by default."""

    def __contains__(self, key: str) -> bool:
        return key in self.keys()


class MemoryStorage(KeyValueStorage):
    """In-process storage. Share one instance to simulate a reload."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStorage(KeyValueStorage):
    """Single JSON document on disk, rewritten on every mutation.

    The file holds an access token, so the parent directory is created 0700
    and the file chmod'ed 0600 on Unix-like systems.
    """

    def __init__(self, path: str = DEFAULT_STORAGE_PATH):
        self.path = Path(path)
        self._data: Dict[str, Any] = self._read()

    def _ensure_secure_directory(self) -> None:
        parent_dir = self.path.parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)
            if platform.system() != "Windows":
                os.chmod(parent_dir, 0o700)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable session storage %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring session storage %s: expected a JSON object", self.path)
            return {}
        return data

    def _write(self) -> None:
        try:
            self._ensure_secure_directory()
            self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
            if platform.system() != "Windows":
                os.chmod(self.path, 0o600)
        except OSError as e:
            # In-memory view stays authoritative for this process.
            logger.error("Failed to persist session storage %s: %s", self.path, e)

    def reload(self) -> None:
        self._data = self._read()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()

    def keys(self) -> List[str]:
        return list(self._data.keys())

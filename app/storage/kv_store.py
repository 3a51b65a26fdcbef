"""Small persistent key/value stores for state that must survive restarts."""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from app.events import ErrorCategory, ErrorSeverity, publish_error

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Durable mapping of string keys to JSON-compatible values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default if the key is missing."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store value under key."""

    def update(self, values: Dict[str, Any]) -> None:
        """Store several values. Implementations may make this atomic."""
        for key, value in values.items():
            self.set(key, value)


class InMemoryKeyValueStore(KeyValueStore):
    """Non-durable store, used when no state path is configured and in tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def update(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self._data.update(values)


class JsonFileKeyValueStore(KeyValueStore):
    """Key/value store persisted as a single JSON object.

    The file is read once on first access and rewritten on every change
    through a temporary file and ``os.replace`` so a crash never leaves a
    half-written document. A corrupted file is reported and treated as empty.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, Any]) -> None:
        with self._lock:
            data = dict(self._load())
            data.update(values)
            self._write(data)
            # Cache only what reached disk
            self._data = data

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data

        self._data = {}
        if not self._path.exists():
            return self._data

        try:
            loaded = json.loads(self._path.read_text())
        except (OSError, ValueError) as e:
            publish_error(
                category=ErrorCategory.STORAGE,
                severity=ErrorSeverity.WARNING,
                message=f"State file {self._path} is unreadable, starting from defaults",
                source="JsonFileKeyValueStore._load",
                exception=e,
            )
            return self._data

        if isinstance(loaded, dict):
            self._data = loaded
        else:
            logger.warning(f"State file {self._path} does not hold an object, ignoring it")
        return self._data

    def _write(self, data: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True))
        os.replace(tmp_path, self._path)


__all__ = ["KeyValueStore", "InMemoryKeyValueStore", "JsonFileKeyValueStore"]

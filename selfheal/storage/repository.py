from __future__ import annotations

import copy
import json
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from selfheal.core.exceptions import PersistenceError

CONFIG_KEY = "ai_healing_config"
STRATEGIES_KEY = "locator_strategies"
MODEL_KEY = "ai_healing_model"
HISTORY_KEY = "healing_history"

_SAFE_KEY_PATTERN = re.compile(r"[^A-Za-z0-9_.-]")


class StateRepository(ABC):
    """Key-value blob store the engine persists its state through.

    Values are JSON-compatible. Implementations report storage failures
    (unreadable backends, undecodable or unserialisable blobs) by raising
    ``PersistenceError``; callers log those and keep their in-memory state.
    ``get`` returns ``None`` for keys that were never written.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class InMemoryStateRepository(StateRepository):
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class JsonFileStateRepository(StateRepository):
    """Stores each key as ``<root>/<key>.json``."""

    def __init__(self, root: str | Path = "artifacts/state") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        return self.root / f"{_SAFE_KEY_PATTERN.sub('_', key)}.json"

    def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"Could not read state '{key}' from {path}") from exc

    def set(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        with self._lock:
            try:
                encoded = json.dumps(value, indent=2, sort_keys=True)
                handle, temp_name = tempfile.mkstemp(dir=self.root, prefix=f".{path.stem}.", suffix=".tmp")
                with os.fdopen(handle, "w", encoding="utf-8") as stream:
                    stream.write(encoded)
                os.replace(temp_name, path)
            except (OSError, TypeError, ValueError) as exc:
                raise PersistenceError(f"Could not write state '{key}' to {path}") from exc

"""
Device-local persisted key-value state.

A tiny string-keyed store (get / set / remove) persisted as a single JSON
file. Holds offline session snapshots, per-session variants, the guest
identity, word history and the card/pack cache. With ``path=None`` it
lives in memory only.
"""

import json
import logging
import os
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class LocalStore:
    """JSON-file backed key-value store."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        if path:
            self._load()

    def _load(self) -> None:
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, "r", encoding="utf8") as fh:
                self._data = json.load(fh)
            logger.debug(
                "Local store loaded from %s (%d keys)",
                self._path, len(self._data),
            )
        except (OSError, ValueError) as exc:
            logger.error(
                "Local store %s unreadable, starting empty: %s",
                self._path, exc,
            )
            self._data = {}

    def _flush(self) -> None:
        if not self._path:
            return
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf8") as fh:
            json.dump(self._data, fh, ensure_ascii=False)
        os.replace(tmp_path, self._path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

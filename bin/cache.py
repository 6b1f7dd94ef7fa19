"""Docket config cache: persistent keyed text store.

The loader keeps two entries per domain (`<domain>-config` holding the
document as JSON text, `<domain>-config-version` holding its version).
Values are replaced wholesale; a read after a write observes the new value.

Implementations:
  - MemoryCache: dict-backed, for tests and ephemeral runs
  - FileCache: one file per key under a directory, written atomically
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._-]")


class ConfigCache:
    """Interface shared by cache backends."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryCache(ConfigCache):
    """In-process cache; the lock keeps refresh threads and readers consistent."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class FileCache(ConfigCache):
    """Directory-backed cache: each key is stored as `<key>.json`."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / (_SAFE_KEY_RE.sub("_", key) + ".json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("cache read failed for %s: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> None:
        """Write value atomically (temp file + fsync + os.replace)."""
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(value)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, str(path))
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

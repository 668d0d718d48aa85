from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Protocol

from common.jsonio import atomic_write_text, dump_json, parse_json

logger = logging.getLogger(__name__)


class StorageQuotaError(Exception):
    pass


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class MemoryKeyValueStore:
    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(_size(v) for k, v in self._data.items() if k != key)
            if used + _size(value) > self.quota_bytes:
                raise StorageQuotaError(f"Quota of {self.quota_bytes} bytes exceeded writing {key}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """One file per key under ``root``, written atomically.

    Mirrors the browser store the chat client was designed around: string
    values only, synchronous, and capped at ``quota_bytes`` across all keys.
    """

    def __init__(self, root: str | Path, quota_bytes: int | None = 5 * 1024 * 1024):
        self.root = Path(root).expanduser()
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        return self.root / (re.sub(r"[^A-Za-z0-9._-]", "_", key) + ".val")

    def get(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        if self.quota_bytes is not None:
            used = 0
            if self.root.exists():
                for item in self.root.glob("*.val"):
                    if item != path:
                        used += item.stat().st_size
            if used + _size(value) > self.quota_bytes:
                raise StorageQuotaError(f"Quota of {self.quota_bytes} bytes exceeded writing {key}")
        atomic_write_text(path, value)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class JsonStorage:
    """Adapter the rest of the app talks to.

    Reads never raise: a missing key or a value that does not parse comes back
    as ``None``. Writes report failure as ``False`` after logging a warning, so
    in-memory state stays authoritative when the disk is full or unwritable.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_text(self, key: str) -> str | None:
        try:
            return self.store.get(key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {key}: {e}")
            return None

    def get_json(self, key: str, validate: Callable[[Any], bool] | None = None) -> Any | None:
        raw = self.get_text(key)
        if raw is None:
            return None
        data = parse_json(raw)
        if data is None or (validate is not None and not validate(data)):
            logger.warning(f"Discarding unreadable value stored under {key}")
            return None
        return data

    def set_text(self, key: str, value: str) -> bool:
        try:
            self.store.set(key, value)
            return True
        except (StorageQuotaError, OSError) as e:
            logger.warning(f"Failed to persist {key}: {e}")
            return False

    def set_json(self, key: str, value: Any) -> bool:
        return self.set_text(key, dump_json(value))

    def remove(self, key: str) -> bool:
        try:
            self.store.remove(key)
            return True
        except OSError as e:
            logger.warning(f"Failed to remove {key}: {e}")
            return False

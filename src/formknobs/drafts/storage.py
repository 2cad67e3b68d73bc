"""Synchronous key-value storages backing the client draft cache.

The interface mirrors a browser's ``localStorage``: string keys, string
values, index-based key enumeration. Writes may raise
:class:`~formknobs.exceptions.StorageQuotaExceededError` or
:class:`~formknobs.exceptions.StorageError`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from formknobs.exceptions import SerializationError, StorageError, StorageQuotaExceededError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStorage(Protocol):
    """Minimal string key-value store."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def key(self, index: int) -> str | None:
        """Key at ``index`` in the storage's enumeration order, or ``None``."""
        ...

    def __len__(self) -> int:
        ...


def storage_keys(storage: KeyValueStorage) -> list[str]:
    """Snapshot all keys, so callers may remove entries while iterating."""
    keys = (storage.key(i) for i in range(len(storage)))
    return [k for k in keys if k is not None]


class InMemoryKeyValueStorage:
    """Dict-backed storage with an optional byte quota.

    Args:
        quota_bytes: Maximum total size of keys plus values (UTF-8), or
            ``None`` for no limit
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            current = self.used_bytes() - self._entry_size(key, self._items.get(key))
            needed = self._entry_size(key, value)
            if current + needed > self._quota_bytes:
                raise StorageQuotaExceededError(
                    "Storage quota exceeded",
                    context={"key": key, "quota_bytes": self._quota_bytes, "needed": needed},
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def key(self, index: int) -> str | None:
        keys = list(self._items)
        return keys[index] if 0 <= index < len(keys) else None

    def clear(self) -> None:
        self._items.clear()

    def used_bytes(self) -> int:
        return sum(self._entry_size(k, v) for k, v in self._items.items())

    @staticmethod
    def _entry_size(key: str, value: str | None) -> int:
        if value is None:
            return 0
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def __len__(self) -> int:
        return len(self._items)


class FileKeyValueStorage:
    """Storage keeping one file per key inside a directory.

    Keys are percent-encoded into file names, so any key is safe to use.

    Example:
        ```python
        storage = FileKeyValueStorage(Path("~/.cache/formknobs").expanduser())
        cache = ClientDraftCache(storage)
        ```
    """

    suffix = ".json"

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}{self.suffix}"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(f"{path} is not UTF-8 text", context={"key": key}) from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}", context={"key": key}) from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            self._path(key).write_text(value, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot write cache entry: {e}", context={"key": key}) from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot remove {path}: {e}", context={"key": key}) from e

    def _keys(self) -> list[str]:
        if not self._directory.exists():
            return []
        return sorted(
            unquote(p.name[: -len(self.suffix)])
            for p in self._directory.glob(f"*{self.suffix}")
        )

    def key(self, index: int) -> str | None:
        keys = self._keys()
        return keys[index] if 0 <= index < len(keys) else None

    def __len__(self) -> int:
        return len(self._keys())

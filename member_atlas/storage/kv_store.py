"""
member_atlas/storage/kv_store.py — Durable string key-value storage.

The member cache persists exactly two string values (the serialised
collection and its fetch timestamp). Two interchangeable stores:

    FileKeyValueStore   — one file per key under a directory; writes go
                          through a ``.tmp`` file and os.replace() so a crash
                          never leaves a half-written value behind.
    InMemoryKeyValueStore — process-local dict; used by tests.

Both accept an optional ``max_value_bytes`` quota; writing a larger value
raises StorageFullError, the same way a browser's storage quota rejects an
oversized item.
"""

import logging
import os
import re
from typing import Optional

logger = logging.getLogger(__name__)


class StorageFullError(OSError):
    """A value exceeded the store's quota and was not written."""


class KeyValueStore:
    """
    Interface for durable string storage.

    get() returns None for missing keys; remove() is a no-op for missing keys.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


def _check_quota(key: str, value: str, max_value_bytes: Optional[int]) -> None:
    if max_value_bytes is None:
        return
    size = len(value.encode("utf-8"))
    if size > max_value_bytes:
        raise StorageFullError(
            f"Value for '{key}' is {size} bytes; quota is {max_value_bytes} bytes"
        )


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, max_value_bytes: Optional[int] = None) -> None:
        self._data: dict[str, str] = {}
        self._max_value_bytes = max_value_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        _check_quota(key, value, self._max_value_bytes)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileKeyValueStore(KeyValueStore):
    """File-per-key store rooted at *directory* (created on first write).

    Args:
        directory:       Storage directory.
        max_value_bytes: Optional per-value quota.
    """

    def __init__(self, directory: str, max_value_bytes: Optional[int] = None) -> None:
        self._dir = directory
        self._max_value_bytes = max_value_bytes

    @property
    def directory(self) -> str:
        return self._dir

    def _path(self, key: str) -> str:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self._dir, key)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except OSError as exc:
            logger.warning("Unreadable storage key %s (%s) — treating as missing", path, exc)
            return None

    def set(self, key: str, value: str) -> None:
        """Write *value* atomically (write .tmp, rename)."""
        _check_quota(key, value, self._max_value_bytes)
        os.makedirs(self._dir, exist_ok=True)
        target = self._path(key)
        tmp = target + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(value)
        os.replace(tmp, target)

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

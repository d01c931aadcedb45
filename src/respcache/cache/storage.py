"""Durable key/value stores backing the persistent mirror.

Values are always text.  :class:`DiskKeyValueStore` keeps them in a
:mod:`diskcache` directory (the Python stand-in for browser local
storage); :class:`MemoryKeyValueStore` keeps them in a dict and is mostly
useful in tests.

Failures surface as :class:`~respcache.exceptions.PersistenceError` so the
mirror has a single error type to absorb.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Protocol

import diskcache

from respcache.exceptions import PersistenceError

_DISK_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class KeyValueStore(Protocol):
    """Text key/value store contract used by the persistent mirror."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...

    def close(self) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store that lives as long as the object does."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)

    def close(self) -> None:
        pass


class DiskKeyValueStore:
    """Store text values in a :class:`diskcache.Cache` directory.

    Args:
        directory: Where the cache database lives.  Created on first use.

    Example::

        store = DiskKeyValueStore(get_storage_dir())
        store.set("https://api.example.com/users", '{"key": ...}')
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        try:
            self._cache = diskcache.Cache(str(self._directory))
        except _DISK_ERRORS as exc:
            raise PersistenceError(f"Cannot open cache directory {self._directory}: {exc}") from exc

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> Optional[str]:
        try:
            return self._cache.get(key)
        except _DISK_ERRORS as exc:
            raise PersistenceError(f"Cannot read {key!r}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            self._cache.set(key, value)
        except _DISK_ERRORS as exc:
            raise PersistenceError(f"Cannot write {key!r}: {exc}") from exc

    def clear(self) -> None:
        try:
            self._cache.clear()
        except _DISK_ERRORS as exc:
            raise PersistenceError(f"Cannot clear {self._directory}: {exc}") from exc

    def keys(self) -> list[str]:
        try:
            return [key for key in self._cache if isinstance(key, str)]
        except _DISK_ERRORS as exc:
            raise PersistenceError(f"Cannot list {self._directory}: {exc}") from exc

    def close(self) -> None:
        self._cache.close()

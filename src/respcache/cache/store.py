"""In-memory cache store and the lookup result it hands to the interceptor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from respcache.models import CacheEntry


@dataclass(frozen=True)
class Hit:
    entry: CacheEntry


@dataclass(frozen=True)
class Miss:
    pass


MISS = Miss()

CacheLookupResult = Union[Hit, Miss]


@dataclass(frozen=True)
class CacheHitSignal:
    """Cancel reason used to carry a live entry from the request phase to the response phase."""

    entry: CacheEntry


class CacheStore:
    """Unbounded key -> :class:`CacheEntry` mapping.

    Entries are never evicted; a stale entry stays until a fresh response
    for the same key overwrites it.  Liveness is decided at read time by
    :meth:`lookup`.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        """Store *entry*, replacing whatever was held under *key*."""
        self._entries[key] = entry

    def snapshot(self) -> dict[str, CacheEntry]:
        return dict(self._entries)

    def lookup(self, key: str, now: int, ttl: int) -> CacheLookupResult:
        """Return :class:`Hit` for a live entry under *key*, otherwise :data:`MISS`."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_live(now, ttl):
            return Hit(entry)
        return MISS

    def live_count(self, now: int, ttl: int) -> int:
        return sum(1 for entry in self._entries.values() if entry.is_live(now, ttl))

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

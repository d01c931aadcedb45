"""Best-effort mirror of the in-memory cache onto a durable key/value store.

Each cache entry is stored as JSON text under its cache key.  A sentinel
key holds the time the mirror was started; at bootstrap the mirror is
either loaded wholesale or, once the sentinel is older than
``ttl_storage``, wiped wholesale.  Individual records never expire on
their own.

Nothing in this module raises into the caching path: durable failures
are logged and absorbed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from respcache.cache.storage import KeyValueStore
from respcache.cache.store import CacheStore
from respcache.clock import Clock, SystemClock
from respcache.exceptions import PersistenceError
from respcache.models import CacheEntry

logger = logging.getLogger(__name__)

SENTINEL_KEY = "respcache:expire"


def _parse(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _parse_stamp(raw: str) -> Optional[int]:
    value = _parse(raw)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def decode_entry(key: str, raw: str) -> CacheEntry:
    """Turn a durable record back into a :class:`CacheEntry`.

    Text that is not a serialised entry is kept verbatim as the payload
    of a never-live entry (``timestamp=0``).
    """
    value = _parse(raw)
    try:
        return CacheEntry.model_validate(value)
    except ValidationError:
        return CacheEntry(key=key, timestamp=0, payload=value)


class PersistentMirror:
    """Keeps a :class:`CacheStore` and a :class:`KeyValueStore` in step.

    Args:
        storage: Durable text key/value store.
        store: The in-memory store to load into at bootstrap.
        ttl_storage: Maximum age of the whole mirror, in milliseconds.
        clock: Time source; defaults to :class:`SystemClock`.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        store: CacheStore,
        ttl_storage: int,
        clock: Optional[Clock] = None,
    ) -> None:
        self._storage = storage
        self._store = store
        self._ttl_storage = ttl_storage
        self._clock = clock or SystemClock()

    @property
    def storage(self) -> KeyValueStore:
        return self._storage

    async def bootstrap(self) -> None:
        """Load or wipe the durable mirror.  Run once before the cache serves requests.

        * no sentinel -- write one, start empty;
        * sentinel at least ``ttl_storage`` old (or unreadable) -- clear
          the durable store, start empty, write a fresh sentinel;
        * otherwise -- load every record into the in-memory store.

        The in-memory store ends up either fully loaded or empty, never
        partially loaded.
        """
        now = self._clock.now_ms()
        try:
            raw_stamp = self._storage.get(SENTINEL_KEY)
            if raw_stamp is None:
                logger.debug("No cache mirror found, starting empty")
                self._store.reset()
                self._storage.set(SENTINEL_KEY, str(now))
                return

            stamp = _parse_stamp(raw_stamp)
            if stamp is None or now - stamp >= self._ttl_storage:
                logger.debug("Cache mirror expired, wiping durable store")
                self._store.reset()
                self._storage.clear()
                self._storage.set(SENTINEL_KEY, str(now))
                return

            loaded: dict[str, CacheEntry] = {}
            for key in self._storage.keys():
                if key == SENTINEL_KEY:
                    continue
                raw = self._storage.get(key)
                if raw is not None:
                    loaded[key] = decode_entry(key, raw)
        except PersistenceError as exc:
            logger.warning("Cache mirror unavailable, starting empty: %s", exc)
            self._store.reset()
            return

        self._store.reset()
        for key, entry in loaded.items():
            self._store.put(key, entry)
        logger.debug("Loaded %d cached responses from mirror", len(loaded))

    def sync(self, store: CacheStore) -> None:
        """Write every entry of *store* to the durable store, skipping failures."""
        for key, entry in store.snapshot().items():
            try:
                self._storage.set(key, entry.model_dump_json())
            except (PersistenceError, ValueError) as exc:
                logger.debug("Skipping durable write for %s: %s", key, exc)

    def clear(self) -> None:
        """Empty the durable store and restart its expiry window."""
        try:
            self._storage.clear()
            self._storage.set(SENTINEL_KEY, str(self._clock.now_ms()))
        except PersistenceError as exc:
            logger.warning("Could not clear cache mirror: %s", exc)

    def close(self) -> None:
        self._storage.close()

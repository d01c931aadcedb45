"""Response caching for respcache.

:class:`ResponseCache` attaches to an
:class:`~respcache.client.InterceptedClient` and short-circuits cacheable
GET requests that have a live entry in its :class:`CacheStore`.  With
persistence enabled the store is mirrored to a durable
:class:`KeyValueStore` (by default a :mod:`diskcache` directory) through
a :class:`PersistentMirror`.
"""

from respcache.cache.interceptor import ResponseCache
from respcache.cache.mirror import SENTINEL_KEY, PersistentMirror
from respcache.cache.storage import DiskKeyValueStore, KeyValueStore, MemoryKeyValueStore
from respcache.cache.store import MISS, CacheHitSignal, CacheLookupResult, CacheStore, Hit, Miss

__all__ = [
    "MISS",
    "SENTINEL_KEY",
    "CacheHitSignal",
    "CacheLookupResult",
    "CacheStore",
    "DiskKeyValueStore",
    "Hit",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "Miss",
    "PersistentMirror",
    "ResponseCache",
]

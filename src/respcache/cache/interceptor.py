"""Time-based response caching attached through client interceptors.

:class:`ResponseCache` registers one request interceptor and one
response interceptor (success and error handlers) on an
:class:`~respcache.client.InterceptedClient`:

* **request phase** -- for a request marked ``cache=True`` the
  ``on_request`` hook runs, the cache key is computed from the request
  URL, and the store is consulted.  A live entry swaps in a token
  cancelled with a :class:`~respcache.cache.store.CacheHitSignal`, so the
  client raises :class:`~respcache.exceptions.Cancel` before any I/O.
  A token the caller already cancelled is left in place.
* **response phase, success** -- the ``on_response`` hook runs; cacheable
  GET responses are written to the store (and mirrored when persistence
  is on).
* **response phase, error** -- a cancellation carrying a
  ``CacheHitSignal`` is turned back into the cached response.  Every
  other error, including a caller's own cancellation, propagates.

Only cacheable GET requests are ever looked up or stored.  The cache key
is the absolute request URL with its query string; headers never take
part in it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from respcache.cache.mirror import PersistentMirror
from respcache.cache.storage import DiskKeyValueStore
from respcache.cache.store import CacheHitSignal, CacheStore, Hit
from respcache.client import InterceptedClient, RequestConfig
from respcache.client.request import attach_config, config_of
from respcache.clock import Clock, SystemClock
from respcache.config import get_storage_dir, resolve_options
from respcache.exceptions import ConfigError, PersistenceError
from respcache.hooks import HookRunner
from respcache.models import CacheEntry, CacheOptions, CachedResponse

logger = logging.getLogger(__name__)


class ResponseCache:
    """In-memory GET response cache for one client.

    The store is owned by this object and shared by both interceptor
    phases; it lives as long as the cache does.

    Args:
        client: The client whose cancellation mechanism is used and whose
            interceptor chain is attached to unless
            :attr:`~respcache.models.CacheOptions.client_instance` names
            another one.
        clock: Time source; defaults to :class:`~respcache.clock.SystemClock`.

    Example::

        async with create_client("https://api.example.com") as client:
            cache = ResponseCache(client)
            await cache.use(CacheOptions(ttl_memory=30_000))
            first = await client.get("/users", cache=True)   # network
            second = await client.get("/users", cache=True)  # cache
    """

    def __init__(self, client: InterceptedClient, clock: Optional[Clock] = None) -> None:
        self._client = client
        self._clock = clock or SystemClock()
        self._store = CacheStore()
        self._options: Optional[CacheOptions] = None
        self._hooks = HookRunner()
        self._mirror: Optional[PersistentMirror] = None
        self._target: InterceptedClient = client
        self._hits = 0
        self._misses = 0

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def options(self) -> Optional[CacheOptions]:
        return self._options

    @property
    def mirror(self) -> Optional[PersistentMirror]:
        return self._mirror

    async def use(self, options: Optional[CacheOptions] = None, **overrides: Any) -> ResponseCache:
        """Apply *options* and attach the interceptors.  May be called once.

        With persistence enabled the durable mirror is bootstrapped before
        the interceptors are registered.

        Args:
            options: Cache options; unset fields fall back to environment
                overrides and then defaults (see
                :func:`~respcache.config.resolve_options`).
            **overrides: Individual option values, highest precedence.

        Returns:
            ``self``, for chaining.

        Raises:
            ConfigError: If called twice or if the options are invalid.
        """
        if self._options is not None:
            raise ConfigError("ResponseCache.use() may only be called once")

        resolved = resolve_options(options, **overrides)
        self._hooks = HookRunner(resolved.on_request, resolved.on_response)
        self._target = resolved.client_instance or self._client
        self._options = resolved

        if resolved.enable_persistence:
            storage = resolved.storage
            try:
                if storage is None:
                    storage = DiskKeyValueStore(get_storage_dir())
            except PersistenceError as exc:
                logger.warning("Persistence disabled: %s", exc)
            else:
                self._mirror = PersistentMirror(storage, self._store, resolved.ttl_storage, self._clock)
                await self._mirror.bootstrap()

        self._target.interceptors.request.use(self._on_request)
        self._target.interceptors.response.use(self._on_response, self._on_response_error)
        return self

    # ------------------------------------------------------------------ #
    # Interceptors
    # ------------------------------------------------------------------ #

    async def _on_request(self, config: RequestConfig) -> RequestConfig:
        if not config.cache:
            return config

        config = await self._hooks.run_request(config)
        if not config.cache or not config.is_get:
            return config

        caller_token = config.cancel_token
        if caller_token is not None and caller_token.requested:
            return config

        key = self.key_for(config)
        result = self._store.lookup(key, self._clock.now_ms(), self._options.ttl_memory)
        if isinstance(result, Hit):
            self._hits += 1
            logger.debug("Cache hit: %s", key)
            source = self._client.cancel_token_source()
            source.cancel(CacheHitSignal(result.entry))
            config.cancel_token = source.token
        else:
            self._misses += 1
            logger.debug("Cache miss: %s", key)
            if caller_token is None:
                config.cancel_token = self._client.cancel_token_source().token
        return config

    async def _on_response(self, response: httpx.Response) -> httpx.Response:
        config = config_of(response)
        response = await self._hooks.run_response(response)
        config = config_of(response) or config

        if not isinstance(response, httpx.Response):
            return response
        if config is None or not config.cache or not config.is_get:
            return response

        key = self.key_for(config)
        payload = CachedResponse.from_response(response).model_dump(mode="json")
        self._store.put(key, CacheEntry(key=key, timestamp=self._clock.now_ms(), payload=payload))
        logger.debug("Cached response for %s", key)

        if self._mirror is not None:
            self._mirror.sync(self._store)
        return response

    async def _on_response_error(self, error: BaseException) -> Any:
        if self._client.is_cancel(error):
            reason = getattr(error, "reason", None)
            if isinstance(reason, CacheHitSignal):
                return self._materialise(reason.entry, getattr(error, "config", None))
        raise error

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    def key_for(self, config: RequestConfig) -> str:
        """Cache key of *config*: its absolute URL including the query string."""
        return str(self._target.resolve_url(config))

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``entries`` (all stored entries), ``live``
            (entries still inside ``ttl_memory``), ``hits``, ``misses``,
            ``ttl_memory``, ``ttl_storage``, and ``persistence``.
        """
        options = self._options or CacheOptions()
        return {
            "entries": len(self._store),
            "live": self._store.live_count(self._clock.now_ms(), options.ttl_memory),
            "hits": self._hits,
            "misses": self._misses,
            "ttl_memory": options.ttl_memory,
            "ttl_storage": options.ttl_storage,
            "persistence": self._mirror is not None,
        }

    def clear(self) -> None:
        """Drop every in-memory entry and, when persistence is on, the durable mirror."""
        self._store.reset()
        if self._mirror is not None:
            self._mirror.clear()

    def close(self) -> None:
        """Close the durable store, if any."""
        if self._mirror is not None:
            self._mirror.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _materialise(self, entry: CacheEntry, config: Optional[RequestConfig]) -> Any:
        """Turn a cached entry back into an :class:`httpx.Response` for *config*."""
        try:
            cached = CachedResponse.model_validate(entry.payload)
        except ValidationError:
            return entry.payload
        request = self._target.build_request(config) if config is not None else None
        response = cached.to_response(request)
        if config is not None:
            attach_config(response, config)
        return response

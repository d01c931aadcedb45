"""User hooks around the cache's interceptors.

:class:`HookRunner` invokes the ``on_request`` and ``on_response``
callables from :class:`~respcache.models.CacheOptions`.  Hooks may be
plain functions or coroutine functions; a hook that returns ``None``
leaves the value it was given in place, anything else replaces it.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    import httpx

    from respcache.client.request import RequestConfig


async def resolve(value: Any) -> Any:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class HookRunner:
    """Runs the optional request and response hooks.

    Args:
        on_request: Called with the :class:`RequestConfig` of a cacheable
            request before its cache key is computed.
        on_response: Called with every :class:`httpx.Response` that came
            back from the network, before it is considered for storage.
    """

    def __init__(
        self,
        on_request: Optional[Callable[..., Any]] = None,
        on_response: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._on_request = on_request
        self._on_response = on_response

    async def run_request(self, config: RequestConfig) -> RequestConfig:
        if self._on_request is None:
            return config
        result = await resolve(self._on_request(config))
        return config if result is None else result

    async def run_response(self, response: httpx.Response) -> httpx.Response:
        if self._on_response is None:
            return response
        result = await resolve(self._on_response(response))
        return response if result is None else result

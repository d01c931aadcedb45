"""respcache -- time-based response caching for httpx clients.

This package layers a single-process memoization cache onto an
interceptor-capable HTTP client.  Cacheable GET requests that hit a live
entry never reach the network; everything else goes out and, on success,
refreshes the cache.

Typical usage::

    from respcache import CacheOptions, ResponseCache, create_client

    async with create_client("https://api.example.com") as client:
        await ResponseCache(client).use(CacheOptions(ttl_memory=60_000))
        resp = await client.get("/users", cache=True)

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for options, entries, and cached responses.
    config: XDG paths and environment-aware option resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

from respcache.cache import ResponseCache  # noqa: E402
from respcache.client import InterceptedClient, create_client  # noqa: E402
from respcache.models import CacheEntry, CacheOptions, CachedResponse  # noqa: E402

__all__ = [
    "CacheEntry",
    "CacheOptions",
    "CachedResponse",
    "InterceptedClient",
    "ResponseCache",
    "create_client",
]

"""Interceptor-capable HTTP client for respcache.

:class:`InterceptedClient` wraps :class:`httpx.AsyncClient` with request
and response interceptor chains and cancel tokens -- the hook points the
response cache attaches to.  :func:`create_client` builds one with the
default headers wired in.

Example::

    from respcache.client import create_client

    async with create_client("https://api.example.com") as client:
        resp = await client.get("/users")
"""

from respcache.client.async_client import InterceptedClient, create_client
from respcache.client.cancel import CancelToken, CancelTokenSource, is_cancel
from respcache.client.request import RequestConfig

__all__ = [
    "CancelToken",
    "CancelTokenSource",
    "InterceptedClient",
    "RequestConfig",
    "create_client",
    "is_cancel",
]

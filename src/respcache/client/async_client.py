"""Asynchronous HTTP client with request/response interceptors.

:class:`InterceptedClient` wraps :class:`httpx.AsyncClient` and runs
every request through three stages:

1. the **request chain** -- registered request interceptors transform
   the :class:`~respcache.client.request.RequestConfig`;
2. **dispatch** -- the cancel token is checked, the request is sent,
   transport failures and non-2xx statuses become typed
   :class:`~respcache.exceptions.TransportError` subclasses;
3. the **response chain** -- registered response interceptors see the
   response (fulfilled) or the error (rejected) and may recover.

An error raised anywhere before the response chain is delivered to its
rejected handlers, so a cancellation raised at dispatch can be turned
back into a result by an interceptor.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from respcache.client.cancel import CancelToken, CancelTokenSource, is_cancel
from respcache.client.interceptors import Interceptors, run_chain
from respcache.client.request import RequestConfig, attach_config
from respcache.exceptions import (
    AuthError,
    ConnectionError_,
    NotFoundError,
    ServerError,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Accept": "application/json"}


class InterceptedClient:
    """Non-blocking HTTP client with an interceptor pipeline.

    Must be used as an async context manager so that the underlying
    transport is properly opened and closed.

    Args:
        base_url: Prefix for relative request URLs.
        headers: Default headers sent with every request.
        timeout: Request timeout in seconds.
        transport: Optional custom transport (e.g. :class:`httpx.MockTransport`).

    Example::

        async with InterceptedClient("https://api.example.com") as client:
            client.interceptors.request.use(add_token)
            resp = await client.get("/users", cache=True)
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.headers = dict(headers or {})
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.interceptors = Interceptors()

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> InterceptedClient:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Cancellation contract
    # ------------------------------------------------------------------ #

    @staticmethod
    def cancel_token_source() -> CancelTokenSource:
        """Create a fresh cancel token and the source that controls it."""
        return CancelToken.source()

    @staticmethod
    def is_cancel(error: BaseException) -> bool:
        return is_cancel(error)

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
        content: Optional[str | bytes] = None,
        data: Optional[dict[str, Any]] = None,
        cache: bool = False,
        cancel_token: Optional[CancelToken] = None,
    ) -> Any:
        """Send a request through the interceptor pipeline.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            url: Path (resolved against ``base_url``) or absolute URL.
            params: Query parameters.
            headers: Extra request headers.
            json: JSON-serialisable body.
            content: Raw body.
            data: Form-encoded body.
            cache: Opt this request into response caching.
            cancel_token: Token checked right before dispatch; cancel its
                source to abort the request.

        Returns:
            Whatever the response chain resolves to -- normally the
            :class:`httpx.Response`.

        Raises:
            AuthError: On 401 / 403.
            NotFoundError: On 404.
            ServerError: On any other non-2xx status.
            ConnectionError_: On network / timeout errors.
            Cancel: When the request was cancelled and no interceptor
                recovered.
        """
        config = RequestConfig(
            method=method.upper(),
            url=url,
            params=dict(params or {}),
            headers=dict(headers or {}),
            json=json,
            content=content,
            data=data,
            cache=cache,
            cancel_token=cancel_token,
        )

        value, error = await run_chain(self.interceptors.request, config)
        if error is None:
            try:
                value = await self._dispatch(value)
            except Exception as exc:
                value, error = None, exc

        value, error = await run_chain(self.interceptors.response, value, error)
        if error is not None:
            raise error
        return value

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)

    # ------------------------------------------------------------------ #
    # Request building
    # ------------------------------------------------------------------ #

    def resolve_url(self, config: RequestConfig) -> httpx.URL:
        """Absolute URL *config* targets, query string included, headers ignored."""
        return self._http.build_request(config.method, config.url, params=config.params).url

    def build_request(self, config: RequestConfig) -> httpx.Request:
        kwargs: dict[str, Any] = {"params": config.params, "headers": config.headers}
        if config.data is not None:
            kwargs["data"] = config.data
        elif config.json is not None:
            kwargs["json"] = config.json
        elif config.content is not None:
            kwargs["content"] = config.content
        return self._http.build_request(config.method, config.url, **kwargs)

    @property
    def _http(self) -> httpx.AsyncClient:
        assert self._client is not None, "Client not initialised -- use as async context manager"
        return self._client

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _dispatch(self, config: RequestConfig) -> httpx.Response:
        if config.cancel_token is not None:
            config.cancel_token.throw_if_requested(config)

        request = self.build_request(config)
        logger.debug("%s %s", request.method, request.url)
        try:
            response = await self._http.send(request)
        except httpx.TransportError as exc:
            raise ConnectionError_(f"{request.method} {request.url} failed: {exc}") from exc

        attach_config(response, config)
        self._map_response_error(response)
        return response

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise a typed exception for non-2xx HTTP status codes."""
        status = response.status_code
        if 200 <= status < 300:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        full_msg = f"HTTP {status}: {msg}" if msg else f"HTTP {status}"
        if status in (401, 403):
            raise AuthError(full_msg, response=response)
        if status == 404:
            raise NotFoundError(full_msg, response=response)
        raise ServerError(full_msg, response=response)


def create_client(
    base_url: str = "",
    headers: Optional[dict[str, str]] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> InterceptedClient:
    """Build an :class:`InterceptedClient` with the default headers wired in.

    Caller-supplied *headers* override :data:`DEFAULT_HEADERS`.
    """
    merged = {**DEFAULT_HEADERS, **(headers or {})}
    return InterceptedClient(base_url=base_url, headers=merged, timeout=timeout, transport=transport)

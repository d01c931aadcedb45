"""The mutable request description threaded through the interceptor chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    import httpx

    from respcache.client.cancel import CancelToken

CONFIG_EXTENSION = "respcache.config"
"""Key under which a response's originating config is kept in ``response.extensions``."""


@dataclass
class RequestConfig:
    """Everything the client needs to send one request.

    Request interceptors receive the config, may mutate it in place or
    return a replacement, and the final config is what gets dispatched.

    Attributes:
        method: HTTP method (e.g. ``"GET"``).
        url: Path or absolute URL; paths are resolved against the
            client's ``base_url``.
        params: Query parameters.
        headers: Extra request headers, merged over the client defaults.
        json: JSON-serialisable body.
        content: Raw body.
        data: Form-encoded body.
        cache: Per-request opt-in to the response cache.  ``False`` means
            the cache ignores the request entirely.
        cancel_token: Checked by the client right before dispatch.
    """

    method: str = "GET"
    url: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    content: Optional[str | bytes] = None
    data: Optional[dict[str, Any]] = None
    cache: bool = False
    cancel_token: Optional[CancelToken] = None

    @property
    def is_get(self) -> bool:
        return self.method.upper() == "GET"


def config_of(response: Any) -> Optional[RequestConfig]:
    """Return the :class:`RequestConfig` a response was produced for, if recorded."""
    extensions = getattr(response, "extensions", None)
    if not isinstance(extensions, dict):
        return None
    config = extensions.get(CONFIG_EXTENSION)
    return config if isinstance(config, RequestConfig) else None


def attach_config(response: httpx.Response, config: RequestConfig) -> httpx.Response:
    response.extensions[CONFIG_EXTENSION] = config
    return response

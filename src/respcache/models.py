"""Canonical Pydantic models shared across respcache modules.

* :class:`CacheOptions` -- the option table accepted by
  :meth:`~respcache.cache.ResponseCache.use`.
* :class:`CacheEntry` -- one ``{timestamp, payload}`` record held by the
  :class:`~respcache.cache.store.CacheStore` and mirrored to durable
  storage as JSON text.
* :class:`CachedResponse` -- the JSON-serialisable form of an
  :class:`httpx.Response` that becomes an entry's payload.

All timestamps and TTLs are integer milliseconds.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TTL_MEMORY = 60_000
DEFAULT_TTL_STORAGE = 360_000

# Describe the decoded body, not the bytes on the wire.
_UNREPLAYABLE_HEADERS = frozenset({"content-length", "content-encoding", "transfer-encoding"})


class CacheOptions(BaseModel):
    """Options applied once when a cache is attached to a client.

    Example::

        CacheOptions(
            ttl_memory=30_000,
            enable_persistence=True,
            on_request=add_token,
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ttl_memory: int = Field(
        default=DEFAULT_TTL_MEMORY,
        gt=0,
        description="Liveness window for in-memory hits, in milliseconds",
    )
    enable_persistence: bool = Field(
        default=False, description="Mirror the cache to a durable key/value store"
    )
    ttl_storage: int = Field(
        default=DEFAULT_TTL_STORAGE,
        gt=0,
        description="Age after which the durable mirror is wiped at bootstrap, in milliseconds",
    )
    client_instance: Optional[Any] = Field(
        default=None,
        description="Client whose interceptor chain the cache attaches to "
        "(defaults to the client the cache was created with)",
    )
    on_request: Optional[Callable[..., Any]] = Field(
        default=None,
        description="Hook run before cache lookup; may return a replacement request config",
    )
    on_response: Optional[Callable[..., Any]] = Field(
        default=None,
        description="Hook run before cache write; may return a replacement response",
    )
    storage: Optional[Any] = Field(
        default=None,
        description="Durable key/value store; a disk store under the cache dir when unset",
    )


class CacheEntry(BaseModel):
    """A cached payload stamped with its creation time."""

    key: str
    timestamp: int = Field(description="Creation time in milliseconds since the epoch")
    payload: Any = None

    def age(self, now: int) -> int:
        return now - self.timestamp

    def is_live(self, now: int, ttl: int) -> bool:
        """Whether the entry is still fresh.

        Strictly less-than: an entry exactly *ttl* milliseconds old is stale.
        """
        return self.age(now) < ttl


class CachedResponse(BaseModel):
    """Serialisable snapshot of an HTTP response.

    ``body`` holds decoded JSON when ``kind`` is ``"json"`` and the
    response text otherwise.  ``encoding`` is the charset the body was
    decoded with; the rebuilt response is encoded with it again so the
    stored ``content-type`` still describes the bytes.
    """

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    kind: str = "json"
    encoding: Optional[str] = None

    @classmethod
    def from_response(cls, response: httpx.Response) -> CachedResponse:
        headers = {
            k: v for k, v in response.headers.items() if k.lower() not in _UNREPLAYABLE_HEADERS
        }
        encoding = response.encoding
        try:
            body = response.json()
        except ValueError:
            return cls(
                status_code=response.status_code,
                headers=headers,
                body=response.text,
                kind="text",
                encoding=encoding,
            )
        return cls(status_code=response.status_code, headers=headers, body=body, encoding=encoding)

    def to_response(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        """Rebuild an :class:`httpx.Response`, bound to *request* when given."""
        headers = httpx.Headers(self.headers)
        if self.kind == "json":
            # ASCII-only JSON, so ``null`` and non-ASCII bodies survive any charset.
            content = json.dumps(self.body).encode("ascii")
            headers.setdefault("content-type", "application/json")
        else:
            content = (self.body or "").encode(self.encoding or "utf-8", errors="replace")
        response = httpx.Response(status_code=self.status_code, headers=headers, content=content)
        if request is not None:
            response.request = request
        return response

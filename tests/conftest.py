"""Shared test fixtures for respcache.

Provides a fake HTTP API behind :class:`httpx.MockTransport`, a manual
clock, config isolation, and a factory for clients with a cache attached.
These fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

from respcache.cache import ResponseCache
from respcache.client import create_client
from respcache.config import ENV_OVERRIDES
from respcache.output import reset_output

BASE_URL = "https://api.example.com"
T0 = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_global_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear RESPCACHE_* variables and undo CLI log routing after every test."""
    for var in ENV_OVERRIDES.values():
        monkeypatch.delenv(var, raising=False)
    yield
    reset_output()
    logger = logging.getLogger("respcache")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG cache/data directories at tmp_path so tests never touch real user dirs."""
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("respcache.config._is_xdg_platform", lambda: True)
    return tmp_path


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ---------------------------------------------------------------------------
# Fake API
# ---------------------------------------------------------------------------


class FakeAPI:
    """Records every request that reaches the network and answers by path.

    Routes map a path to either a static ``(status, json)`` pair or a
    callable receiving the :class:`httpx.Request`.  Unknown paths answer
    404.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self._routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def respond(self, path: str, json: Any = None, status: int = 200) -> None:
        self._routes[path] = lambda request: httpx.Response(status, json=json)

    def respond_with(self, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self._routes[path] = handler

    def count(self, path: Optional[str] = None) -> int:
        if path is None:
            return len(self.calls)
        return sum(1 for request in self.calls if request.url.path == path)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        # Yield so concurrent requests interleave at the network boundary.
        await asyncio.sleep(0)
        handler = self._routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"message": "missing"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def fake_api() -> FakeAPI:
    api = FakeAPI()
    counter = {"n": 0}

    def users(request: httpx.Request) -> httpx.Response:
        counter["n"] += 1
        return httpx.Response(200, json={"id": counter["n"]})

    api.respond_with("/users", users)
    return api


@pytest.fixture
def cached_client(fake_api: FakeAPI, clock: ManualClock):
    """Factory: ``async with cached_client(**options) as (client, cache)``."""

    @asynccontextmanager
    async def _open(**options: Any):
        async with create_client(BASE_URL, transport=fake_api.transport) as client:
            cache = ResponseCache(client, clock=clock)
            await cache.use(**options)
            try:
                yield client, cache
            finally:
                cache.close()

    return _open

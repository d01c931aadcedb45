"""Tests for ResponseCache -- the request/response interception protocol."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from respcache.cache import CacheHitSignal, MemoryKeyValueStore, ResponseCache, SENTINEL_KEY
from respcache.client import RequestConfig, create_client
from respcache.client.request import config_of
from respcache.exceptions import Cancel, ConfigError, ConnectionError_, PersistenceError, ServerError
from respcache.models import CacheEntry, CacheOptions

USERS_URL = "https://api.example.com/users"


# ------------------------------------------------------------------ #
# Hits and misses
# ------------------------------------------------------------------ #


class TestHitAndMiss:
    @pytest.mark.asyncio
    async def test_second_call_within_ttl_is_served_from_cache(self, cached_client, fake_api, clock) -> None:
        async with cached_client(ttl_memory=60_000) as (client, cache):
            first = await client.get("/users", cache=True)
            clock.advance(30_000)
            second = await client.get("/users", cache=True)

        assert fake_api.count("/users") == 1
        assert first.json() == {"id": 1}
        assert second.json() == {"id": 1}
        assert second.status_code == 200

    @pytest.mark.asyncio
    async def test_users_scenario_expires_after_ttl(self, cached_client, fake_api, clock) -> None:
        """t=0 network, t=30s cache, t=70s network again."""
        async with cached_client(ttl_memory=60_000) as (client, cache):
            r0 = await client.get("/users", cache=True)
            clock.advance(30_000)
            r30 = await client.get("/users", cache=True)
            clock.advance(40_000)
            r70 = await client.get("/users", cache=True)

        assert [r0.json(), r30.json(), r70.json()] == [{"id": 1}, {"id": 1}, {"id": 2}]
        assert fake_api.count("/users") == 2

    @pytest.mark.asyncio
    async def test_entry_exactly_ttl_old_is_stale(self, cached_client, fake_api, clock) -> None:
        async with cached_client(ttl_memory=1_000) as (client, cache):
            await client.get("/users", cache=True)
            clock.advance(999)
            await client.get("/users", cache=True)
            assert fake_api.count("/users") == 1
            clock.advance(1)
            await client.get("/users", cache=True)

        assert fake_api.count("/users") == 2

    @pytest.mark.asyncio
    async def test_hit_is_bound_to_current_request(self, cached_client, clock) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)
            hit = await client.get("/users", cache=True)

        assert isinstance(hit, httpx.Response)
        assert str(hit.request.url) == USERS_URL
        assert hit.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_refresh_overwrites_existing_entry(self, cached_client, clock) -> None:
        async with cached_client(ttl_memory=1_000) as (client, cache):
            await client.get("/users", cache=True)
            clock.advance(5_000)
            await client.get("/users", cache=True)

            assert len(cache.store) == 1
            entry = cache.store.get(USERS_URL)
            assert entry is not None
            assert entry.timestamp == clock.now
            assert entry.payload["body"] == {"id": 2}

    @pytest.mark.asyncio
    async def test_query_params_are_part_of_the_key(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", params={"page": 1}, cache=True)
            await client.get("/users", params={"page": 2}, cache=True)
            await client.get("/users", params={"page": 1}, cache=True)

            assert set(cache.store.snapshot()) == {
                f"{USERS_URL}?page=1",
                f"{USERS_URL}?page=2",
            }
        assert fake_api.count("/users") == 2

    @pytest.mark.asyncio
    async def test_null_json_body_survives_hit(self, cached_client, fake_api) -> None:
        fake_api.respond_with(
            "/nothing",
            lambda request: httpx.Response(
                200, content=b"null", headers={"content-type": "application/json"}
            ),
        )
        async with cached_client() as (client, cache):
            first = await client.get("/nothing", cache=True)
            hit = await client.get("/nothing", cache=True)

        assert first.json() is None
        assert hit.content == b"null"
        assert hit.json() is None
        assert fake_api.count("/nothing") == 1


# ------------------------------------------------------------------ #
# What is cacheable
# ------------------------------------------------------------------ #


class TestCacheability:
    @pytest.mark.asyncio
    async def test_requests_without_flag_bypass_cache(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users")
            await client.get("/users")
            assert len(cache.store) == 0
        assert fake_api.count("/users") == 2

    @pytest.mark.asyncio
    async def test_uncached_request_ignores_cached_entry(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)
            fresh = await client.get("/users")
        assert fresh.json() == {"id": 2}
        assert fake_api.count("/users") == 2

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    @pytest.mark.asyncio
    async def test_non_get_is_never_stored_or_served(self, cached_client, fake_api, method: str) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)
            await client.request(method, "/users", cache=True)
            await client.request(method, "/users", cache=True)

            assert list(cache.store.snapshot()) == [USERS_URL]
            assert cache.store.get(USERS_URL).payload["body"] == {"id": 1}
        assert fake_api.count("/users") == 3

    @pytest.mark.asyncio
    async def test_store_size_bounded_by_distinct_keys(self, cached_client, clock) -> None:
        async with cached_client(ttl_memory=10) as (client, cache):
            for _ in range(5):
                await client.get("/users", cache=True)
                await client.get("/users", params={"q": "x"}, cache=True)
                clock.advance(10)
            assert len(cache.store) == 2


# ------------------------------------------------------------------ #
# Hooks
# ------------------------------------------------------------------ #


class TestHooks:
    @pytest.mark.asyncio
    async def test_on_request_header_does_not_change_key(self, cached_client, fake_api) -> None:
        async def add_token(config: RequestConfig) -> RequestConfig:
            config.headers["token"] = "i am token"
            return config

        async with cached_client(on_request=add_token) as (client, cache):
            await client.get("/users", cache=True)
            hit = await client.get("/users", cache=True)

            assert list(cache.store.snapshot()) == [USERS_URL]
        assert fake_api.calls[0].headers["token"] == "i am token"
        assert fake_api.count("/users") == 1
        assert hit.json() == {"id": 1}

    @pytest.mark.asyncio
    async def test_on_request_may_return_replacement(self, cached_client, fake_api) -> None:
        def swap(config: RequestConfig) -> RequestConfig:
            return RequestConfig(method="GET", url="/users", headers={"x-swapped": "1"}, cache=True)

        async with cached_client(on_request=swap) as (client, cache):
            await client.get("/ignored", cache=True)

        assert fake_api.calls[0].url.path == "/users"
        assert fake_api.calls[0].headers["x-swapped"] == "1"

    @pytest.mark.asyncio
    async def test_on_request_not_run_for_uncached_requests(self, cached_client) -> None:
        seen: list[str] = []

        async with cached_client(on_request=lambda config: seen.append(config.url)) as (client, cache):
            await client.get("/users")
            await client.get("/users", cache=True)

        assert seen == ["/users"]

    @pytest.mark.asyncio
    async def test_on_response_replacement_is_cached(self, cached_client, fake_api) -> None:
        async def rewrite(response: httpx.Response) -> httpx.Response:
            return httpx.Response(200, json={"rewritten": True})

        async with cached_client(on_response=rewrite) as (client, cache):
            first = await client.get("/users", cache=True)
            second = await client.get("/users", cache=True)

        assert first.json() == {"rewritten": True}
        assert second.json() == {"rewritten": True}
        assert fake_api.count("/users") == 1

    @pytest.mark.asyncio
    async def test_on_response_returning_none_keeps_response(self, cached_client) -> None:
        async with cached_client(on_response=lambda response: None) as (client, cache):
            response = await client.get("/users", cache=True)
        assert response.json() == {"id": 1}


# ------------------------------------------------------------------ #
# Errors
# ------------------------------------------------------------------ #


class TestErrors:
    @pytest.mark.asyncio
    async def test_server_error_propagates_and_is_not_cached(self, cached_client, fake_api) -> None:
        fake_api.respond("/broken", {"error": "boom"}, status=500)

        async with cached_client() as (client, cache):
            with pytest.raises(ServerError, match="HTTP 500: boom"):
                await client.get("/broken", cache=True)
            with pytest.raises(ServerError):
                await client.get("/broken", cache=True)
            assert len(cache.store) == 0
        assert fake_api.count("/broken") == 2

    @pytest.mark.asyncio
    async def test_network_failure_propagates(self, cached_client, fake_api) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fake_api.respond_with("/down", refuse)
        async with cached_client() as (client, cache):
            with pytest.raises(ConnectionError_):
                await client.get("/down", cache=True)

    @pytest.mark.asyncio
    async def test_callers_own_cancellation_is_not_swallowed(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            def cancel_everything(config: RequestConfig) -> RequestConfig:
                source = client.cancel_token_source()
                source.cancel("user abort")
                config.cancel_token = source.token
                return config

            client.interceptors.request.use(cancel_everything)
            with pytest.raises(Cancel) as excinfo:
                await client.get("/users", cache=True)

        assert excinfo.value.reason == "user abort"
        assert fake_api.count() == 0

    @pytest.mark.asyncio
    async def test_hit_travels_as_cancellation(self, cached_client, fake_api) -> None:
        reasons: list[object] = []

        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)

            def spy(config: RequestConfig) -> RequestConfig:
                if config.cancel_token is not None and config.cancel_token.requested:
                    reasons.append(config.cancel_token.reason)
                return config

            client.interceptors.request.use(spy)
            await client.get("/users", cache=True)

        assert len(reasons) == 1
        assert isinstance(reasons[0], CacheHitSignal)
        assert reasons[0].entry.key == USERS_URL


# ------------------------------------------------------------------ #
# Caller cancellation
# ------------------------------------------------------------------ #


class TestCallerCancellation:
    @pytest.mark.asyncio
    async def test_interceptor_registered_before_cache_wins(self, fake_api, clock) -> None:
        async with create_client("https://api.example.com", transport=fake_api.transport) as client:

            def cancel_everything(config: RequestConfig) -> RequestConfig:
                source = client.cancel_token_source()
                source.cancel("user abort")
                config.cancel_token = source.token
                return config

            client.interceptors.request.use(cancel_everything)
            await ResponseCache(client, clock=clock).use()

            with pytest.raises(Cancel) as excinfo:
                await client.get("/users", cache=True)

        assert excinfo.value.reason == "user abort"
        assert fake_api.count() == 0

    @pytest.mark.asyncio
    async def test_cancelled_token_argument_beats_live_entry(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)
            source = client.cancel_token_source()
            source.cancel("stop")

            with pytest.raises(Cancel) as excinfo:
                await client.get("/users", cache=True, cancel_token=source.token)

        assert excinfo.value.reason == "stop"
        assert fake_api.count("/users") == 1

    @pytest.mark.asyncio
    async def test_live_caller_token_is_kept_on_miss(self, cached_client) -> None:
        async with cached_client() as (client, cache):
            source = client.cancel_token_source()
            response = await client.get("/users", cache=True, cancel_token=source.token)

        assert config_of(response).cancel_token is source.token

    @pytest.mark.asyncio
    async def test_uncancelled_caller_token_still_gets_hit(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await client.get("/users", cache=True)
            source = client.cancel_token_source()
            hit = await client.get("/users", cache=True, cancel_token=source.token)

        assert hit.json() == {"id": 1}
        assert fake_api.count("/users") == 1
        assert source.token.requested is False


# ------------------------------------------------------------------ #
# Concurrency
# ------------------------------------------------------------------ #


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_misses_both_reach_network(self, cached_client, fake_api) -> None:
        async with cached_client() as (client, cache):
            await asyncio.gather(
                client.get("/users", cache=True),
                client.get("/users", cache=True),
            )
            assert len(cache.store) == 1
        assert fake_api.count("/users") == 2


# ------------------------------------------------------------------ #
# Persistence
# ------------------------------------------------------------------ #


class _FailingWrites(MemoryKeyValueStore):
    def set(self, key: str, value: str) -> None:
        if key != SENTINEL_KEY:
            raise PersistenceError("disk full")
        super().set(key, value)


class TestPersistence:
    @pytest.mark.asyncio
    async def test_reload_reproduces_entry(self, cached_client, fake_api, clock) -> None:
        storage = MemoryKeyValueStore()
        async with cached_client(enable_persistence=True, storage=storage) as (client, cache):
            await client.get("/users", cache=True)
            original = cache.store.get(USERS_URL)

        async with cached_client(enable_persistence=True, storage=storage) as (client, cache):
            assert cache.store.get(USERS_URL) == original
            hit = await client.get("/users", cache=True)

        assert hit.json() == {"id": 1}
        assert fake_api.count("/users") == 1

    @pytest.mark.asyncio
    async def test_failing_durable_write_does_not_affect_memory_path(self, cached_client) -> None:
        async with cached_client(enable_persistence=True, storage=_FailingWrites()) as (client, cache):
            response = await client.get("/users", cache=True)
            assert response.json() == {"id": 1}
            assert USERS_URL in cache.store

    @pytest.mark.asyncio
    async def test_default_storage_lives_in_cache_dir(self, cached_client, isolated_config) -> None:
        async with cached_client(enable_persistence=True) as (client, cache):
            await client.get("/users", cache=True)
            assert cache.mirror is not None
            assert cache.mirror.storage.get(USERS_URL) is not None

        assert (isolated_config / "cache" / "respcache" / "responses").is_dir()

    @pytest.mark.asyncio
    async def test_clear_empties_memory_and_mirror(self, cached_client) -> None:
        storage = MemoryKeyValueStore()
        async with cached_client(enable_persistence=True, storage=storage) as (client, cache):
            await client.get("/users", cache=True)
            cache.clear()
            assert len(cache.store) == 0
        assert storage.keys() == [SENTINEL_KEY]


# ------------------------------------------------------------------ #
# Setup
# ------------------------------------------------------------------ #


class TestUse:
    @pytest.mark.asyncio
    async def test_use_twice_raises(self, cached_client) -> None:
        async with cached_client() as (client, cache):
            with pytest.raises(ConfigError):
                await cache.use()

    @pytest.mark.asyncio
    async def test_invalid_ttl_raises_config_error(self) -> None:
        async with create_client("https://api.example.com") as client:
            with pytest.raises(ConfigError):
                await ResponseCache(client).use(ttl_memory=0)

    @pytest.mark.asyncio
    async def test_attaches_exactly_one_interceptor_per_phase(self, cached_client) -> None:
        async with cached_client() as (client, cache):
            assert len(client.interceptors.request) == 1
            assert len(client.interceptors.response) == 1

    @pytest.mark.asyncio
    async def test_client_instance_option_selects_target(self, fake_api, clock) -> None:
        async with create_client("https://api.example.com", transport=fake_api.transport) as other:
            async with create_client("https://api.example.com", transport=fake_api.transport) as owner:
                cache = ResponseCache(owner, clock=clock)
                await cache.use(CacheOptions(client_instance=other))

                assert len(owner.interceptors.request) == 0
                assert len(other.interceptors.request) == 1

                await other.get("/users", cache=True)
                await other.get("/users", cache=True)
        assert fake_api.count("/users") == 1

    @pytest.mark.asyncio
    async def test_options_object_and_overrides(self, cached_client) -> None:
        async with cached_client(ttl_memory=5_000) as (client, cache):
            assert cache.options is not None
            assert cache.options.ttl_memory == 5_000
            assert cache.options.enable_persistence is False

    @pytest.mark.asyncio
    async def test_stats(self, cached_client, clock) -> None:
        async with cached_client(ttl_memory=1_000) as (client, cache):
            await client.get("/users", cache=True)
            await client.get("/users", cache=True)
            clock.advance(1_000)
            stats = cache.stats()

        assert stats == {
            "entries": 1,
            "live": 0,
            "hits": 1,
            "misses": 1,
            "ttl_memory": 1_000,
            "ttl_storage": 360_000,
            "persistence": False,
        }

    @pytest.mark.asyncio
    async def test_raw_payload_entry_is_returned_as_is(self, cached_client, clock) -> None:
        async with cached_client() as (client, cache):
            cache.store.put(USERS_URL, CacheEntry(key=USERS_URL, timestamp=clock.now, payload="plain"))
            assert await client.get("/users", cache=True) == "plain"

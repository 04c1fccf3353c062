"""Tests for the Redis-backed shared cache and client provider."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tokengate.data.cache import SharedCache
from tokengate.data.redis_client import RedisProvider


def _cache_with(client: AsyncMock) -> SharedCache:
    return SharedCache(RedisProvider(client=client))


class TestRedisProvider:
    def test_empty_url_disables(self) -> None:
        provider = RedisProvider(url="")
        assert provider.enabled is False
        assert provider.get() is None

    def test_lazy_client_built_once(self) -> None:
        with patch("tokengate.data.redis_client.aioredis.from_url") as from_url:
            from_url.return_value = MagicMock()
            provider = RedisProvider(url="redis://cache:6379/0", connect_timeout=0.2, socket_timeout=0.3)
            from_url.assert_not_called()

            first = provider.get()
            second = provider.get()

        assert first is second
        from_url.assert_called_once()
        kwargs = from_url.call_args.kwargs
        assert kwargs["socket_connect_timeout"] == 0.2
        assert kwargs["socket_timeout"] == 0.3

    def test_injected_client(self) -> None:
        client = MagicMock()
        assert RedisProvider(client=client).get() is client

    @pytest.mark.asyncio
    async def test_ping_failure_is_false(self) -> None:
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("refused")
        assert await RedisProvider(client=client).ping() is False

    @pytest.mark.asyncio
    async def test_ping_disabled(self) -> None:
        assert await RedisProvider(url="").ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        client = AsyncMock()
        provider = RedisProvider(client=client)
        await provider.close()
        client.aclose.assert_awaited_once()


class TestSharedCacheHappyPath:
    @pytest.mark.asyncio
    async def test_get_decodes_json(self) -> None:
        client = AsyncMock()
        client.get.return_value = json.dumps({"balance": 40})
        cache = _cache_with(client)

        assert await cache.get("balance:t1") == {"balance": 40}
        client.get.assert_awaited_once_with("cache:balance:t1")

    @pytest.mark.asyncio
    async def test_get_miss(self) -> None:
        client = AsyncMock()
        client.get.return_value = None
        assert await _cache_with(client).get("balance:t1") is None

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self) -> None:
        client = AsyncMock()
        await _cache_with(client).set("balance:t1", 40, 10)
        client.setex.assert_awaited_once_with("cache:balance:t1", 10, "40")

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        client = AsyncMock()
        await _cache_with(client).delete("balance:t1")
        client.delete.assert_awaited_once_with("cache:balance:t1")


class TestSharedCacheDegradation:
    @pytest.mark.asyncio
    async def test_get_error_is_miss(self) -> None:
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("refused")
        assert await _cache_with(client).get("k") is None

    @pytest.mark.asyncio
    async def test_set_timeout_swallowed(self) -> None:
        client = AsyncMock()
        client.setex.side_effect = RedisTimeoutError("slow")
        await _cache_with(client).set("k", 1, 10)

    @pytest.mark.asyncio
    async def test_delete_error_swallowed(self) -> None:
        client = AsyncMock()
        client.delete.side_effect = OSError("network unreachable")
        await _cache_with(client).delete("k")

    @pytest.mark.asyncio
    async def test_corrupt_value_is_miss(self) -> None:
        client = AsyncMock()
        client.get.return_value = "{not json"
        assert await _cache_with(client).get("k") is None

    @pytest.mark.asyncio
    async def test_disabled_redis_is_noop(self) -> None:
        cache = SharedCache(RedisProvider(url=""))
        await cache.set("k", 1, 10)
        await cache.delete("k")
        assert await cache.get("k") is None

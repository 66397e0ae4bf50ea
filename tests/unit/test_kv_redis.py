"""
Unit tests for the Redis KV cache.

The asyncio client is replaced by an AsyncMock; no server is needed.

Tests cover:
- Command mapping (GET, SET EX, INCR, DEL)
- Mapping of redis-py errors to KVError types
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from dbaas.tablecache.errors import KVConnectionError, KVError
from dbaas.tablecache.kv.redis_backend import RedisKVCache


class TestRedisKVCache:
    """Tests for RedisKVCache."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def kv(self, client):
        return RedisKVCache("redis://localhost:6379/0", client=client)

    @pytest.mark.asyncio
    async def test_get(self, kv, client):
        client.get.return_value = "value"

        assert await kv.get("k") == "value"
        client.get.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, kv, client):
        client.get.return_value = b"value"

        assert await kv.get("k") == "value"

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_ex(self, kv, client):
        client.set.return_value = True

        assert await kv.set("k", "v", ttl_seconds=60) is True
        client.set.assert_awaited_once_with("k", "v", ex=60)

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, kv, client):
        client.set.return_value = True

        await kv.set("k", "v")
        client.set.assert_awaited_once_with("k", "v")

    @pytest.mark.asyncio
    async def test_increment_uses_incr(self, kv, client):
        client.incr.return_value = 3

        assert await kv.increment("tc_default_user_ver") == 3
        client.incr.assert_awaited_once_with("tc_default_user_ver")

    @pytest.mark.asyncio
    async def test_delete(self, kv, client):
        client.delete.return_value = 1

        assert await kv.delete("k") is True

    @pytest.mark.asyncio
    async def test_connection_error_mapped(self, kv, client):
        client.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(KVConnectionError):
            await kv.get("k")

    @pytest.mark.asyncio
    async def test_incr_on_non_integer_mapped(self, kv, client):
        client.incr.side_effect = ResponseError("value is not an integer")

        with pytest.raises(KVError) as exc_info:
            await kv.increment("k")

        assert exc_info.value.key == "k"

    @pytest.mark.asyncio
    async def test_not_connected(self):
        kv = RedisKVCache("redis://localhost:6379/0")

        with pytest.raises(KVConnectionError):
            await kv.get("k")

    @pytest.mark.asyncio
    async def test_connect_failure(self, client):
        client.ping.side_effect = RedisConnectionError("refused")
        kv = RedisKVCache("redis://localhost:6379/0", client=client)
        kv._connected = False

        with pytest.raises(KVConnectionError):
            await kv.connect()

    @pytest.mark.asyncio
    async def test_close(self, kv, client):
        await kv.close()

        client.aclose.assert_awaited_once()
        assert not kv.is_connected

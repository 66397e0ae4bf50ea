"""
Unit tests for the in-memory KV cache.

Tests cover:
- Connection lifecycle
- TTL expiry
- Atomic increment semantics
"""

import asyncio

import pytest

from dbaas.tablecache.errors import KVConnectionError, KVError
from dbaas.tablecache.kv.memory import InMemoryKVCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestInMemoryKVCache:
    """Tests for InMemoryKVCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def kv(self, clock):
        return InMemoryKVCache(clock=clock)

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, kv):
        assert not kv.is_connected

        await kv.connect()
        assert kv.is_connected

        await kv.close()
        assert not kv.is_connected

    @pytest.mark.asyncio
    async def test_requires_connection(self, kv):
        with pytest.raises(KVConnectionError):
            await kv.get("k")
        with pytest.raises(KVConnectionError):
            await kv.increment("k")

    @pytest.mark.asyncio
    async def test_set_get_delete(self, kv):
        await kv.connect()

        assert await kv.set("k", "v") is True
        assert await kv.get("k") == "v"
        assert await kv.delete("k") is True
        assert await kv.get("k") is None
        assert await kv.delete("k") is False

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, kv, clock):
        await kv.connect()
        await kv.set("k", "v", ttl_seconds=10)

        clock.now = 9.9
        assert await kv.get("k") == "v"
        clock.now = 10.0
        assert await kv.get("k") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self, kv, clock):
        await kv.connect()
        await kv.set("k", "v", ttl_seconds=0)

        clock.now = 10_000
        assert await kv.get("k") == "v"
        assert kv.ttl("k") is None

    @pytest.mark.asyncio
    async def test_increment_missing_key(self, kv):
        await kv.connect()

        assert await kv.increment("n") == 1
        assert await kv.increment("n") == 2
        assert await kv.get("n") == "2"

    @pytest.mark.asyncio
    async def test_increment_non_integer_fails(self, kv):
        await kv.connect()
        await kv.set("n", "abc")

        with pytest.raises(KVError):
            await kv.increment("n")

    @pytest.mark.asyncio
    async def test_increment_keeps_expiry(self, kv, clock):
        await kv.connect()
        await kv.set("n", "5", ttl_seconds=10)

        await kv.increment("n")

        assert kv.ttl("n") == 10

    @pytest.mark.asyncio
    async def test_concurrent_increments(self, kv):
        await kv.connect()

        await asyncio.gather(*(kv.increment("n") for _ in range(100)))

        assert await kv.get("n") == "100"

    @pytest.mark.asyncio
    async def test_close_clears_data(self, kv):
        await kv.connect()
        await kv.set("k", "v")

        await kv.close()
        await kv.connect()

        assert kv.keys() == []

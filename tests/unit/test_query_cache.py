"""
Unit tests for the version-tagged query-result cache.

Tests cover:
- Hit only when the stored version matches the counter
- O(1) invalidation (one increment, no key enumeration)
- Corrupt entries and cache unavailability degrade to misses
- TTL handling
"""

import json

import pytest

from dbaas.tablecache.cache import MISS, EntityIdentity, QueryResultCache, fingerprint, query_key
from dbaas.tablecache.kv.memory import InMemoryKVCache


class FakeClock:
    """Manually advanced time source."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingKV(InMemoryKVCache):
    """In-memory cache that records every call."""

    def __init__(self):
        super().__init__()
        self.calls = []

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key, value, ttl_seconds=0):
        self.calls.append(("set", key))
        return await super().set(key, value, ttl_seconds)

    async def increment(self, key):
        self.calls.append(("increment", key))
        return await super().increment(key)


class TestQueryResultCache:
    """Tests for QueryResultCache."""

    identity = EntityIdentity("tc", "default", "user")

    @pytest.fixture
    def kv(self):
        return InMemoryKVCache()

    @pytest.mark.asyncio
    async def test_miss_when_absent(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)

        assert await cache.get(self.identity, "lbc", fingerprint({"a": 1})) is MISS

    @pytest.mark.asyncio
    async def test_hit_at_same_version(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"status": 1}, None, 0, 20, "")
        rows = [{"id": 1, "name": "a"}]

        assert await cache.set(self.identity, "lbc", fp, rows) is True
        assert await cache.get(self.identity, "lbc", fp) == rows

    @pytest.mark.asyncio
    async def test_entry_carries_current_version(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        await cache.invalidate_all(self.identity)
        await cache.invalidate_all(self.identity)
        fp = fingerprint({"a": 1})

        await cache.set(self.identity, "gcc", fp, 7)

        stored = json.loads(await kv.get(query_key(self.identity, "gcc", fp)))
        assert stored == {"ver": 2, "data": 7}

    @pytest.mark.asyncio
    async def test_bump_after_store_makes_miss(self, kv):
        """Any bump after storing turns the entry into a miss."""
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"a": 1})
        await cache.set(self.identity, "lbc", fp, [{"id": 1}])

        new_version = await cache.invalidate_all(self.identity)

        assert new_version == 1
        assert await cache.get(self.identity, "lbc", fp) is MISS

    @pytest.mark.asyncio
    async def test_restored_at_new_version_hits_again(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"a": 1})
        await cache.set(self.identity, "lbc", fp, [{"id": 1}])
        await cache.invalidate_all(self.identity)

        await cache.set(self.identity, "lbc", fp, [{"id": 2}])

        assert await cache.get(self.identity, "lbc", fp) == [{"id": 2}]

    @pytest.mark.asyncio
    async def test_invalidate_all_is_single_increment(self):
        """Invalidation touches only the counter, however many entries exist."""
        kv = CountingKV()
        await kv.connect()
        cache = QueryResultCache(kv)
        for i in range(25):
            await cache.set(self.identity, "lbc", fingerprint({"id": i}), [{"id": i}])
        kv.calls.clear()

        await cache.invalidate_all(self.identity)

        assert kv.calls == [("increment", "tc_default_user_ver")]

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_miss(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"a": 1})
        await kv.set(query_key(self.identity, "lbc", fp), "{not json")

        assert await cache.get(self.identity, "lbc", fp) is MISS

    @pytest.mark.asyncio
    async def test_entry_without_version_is_miss(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"a": 1})
        await kv.set(query_key(self.identity, "lbc", fp), json.dumps({"data": [1]}))

        assert await cache.get(self.identity, "lbc", fp) is MISS

    @pytest.mark.asyncio
    async def test_unavailable_cache_degrades(self, kv):
        """A disconnected backend yields misses and failed writes, not errors."""
        cache = QueryResultCache(kv)
        fp = fingerprint({"a": 1})

        assert await cache.get(self.identity, "lbc", fp) is MISS
        assert await cache.set(self.identity, "lbc", fp, [1]) is False
        assert await cache.invalidate_all(self.identity) is None

    @pytest.mark.asyncio
    async def test_default_ttl_applies(self):
        clock = FakeClock()
        kv = InMemoryKVCache(clock=clock)
        await kv.connect()
        cache = QueryResultCache(kv, default_ttl=30)
        fp = fingerprint({"a": 1})

        await cache.set(self.identity, "lbc", fp, [1])
        assert kv.ttl(query_key(self.identity, "lbc", fp)) == 30

        clock.now += 31
        assert await cache.get(self.identity, "lbc", fp) is MISS

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self):
        clock = FakeClock()
        kv = InMemoryKVCache(clock=clock)
        await kv.connect()
        cache = QueryResultCache(kv, default_ttl=30)
        fp = fingerprint({"a": 1})

        await cache.set(self.identity, "lbc", fp, [1], ttl=5)

        assert kv.ttl(query_key(self.identity, "lbc", fp)) == 5

    @pytest.mark.asyncio
    async def test_binary_values_round_trip(self, kv):
        await kv.connect()
        cache = QueryResultCache(kv)
        fp = fingerprint({"status": 1})
        rows = [{"id": 1, "blob": b"\x89PNG"}, {"id": 2, "blob": bytearray(b"ab")}]

        await cache.set(self.identity, "lbc", fp, rows)

        assert await cache.get(self.identity, "lbc", fp) == [
            {"id": 1, "blob": b"\x89PNG"},
            {"id": 2, "blob": b"ab"},
        ]

"""
Unit tests for the single-record cache.

Tests cover:
- Set/get of records
- Clear writes the empty payload (no stale reads)
- Corrupt entries and cache unavailability
"""

import pytest

from dbaas.tablecache.cache import EMPTY, MISS, EntityIdentity, SingleRecordCache, single_key
from dbaas.tablecache.kv.memory import InMemoryKVCache


class TestSingleRecordCache:
    """Tests for SingleRecordCache."""

    identity = EntityIdentity("tc", "default", "user")

    @pytest.fixture
    def kv(self):
        return InMemoryKVCache()

    @pytest.mark.asyncio
    async def test_absent_is_miss(self, kv):
        await kv.connect()
        cache = SingleRecordCache(kv)

        assert await cache.get(self.identity, 1) is MISS

    @pytest.mark.asyncio
    async def test_set_then_get(self, kv):
        await kv.connect()
        cache = SingleRecordCache(kv)
        record = {"id": 1, "name": "a"}

        assert await cache.set(self.identity, 1, record) is True
        assert await cache.get(self.identity, 1) == record

    @pytest.mark.asyncio
    async def test_clear_returns_empty_not_stale(self, kv):
        """clear() followed by get() yields EMPTY, never the prior value."""
        await kv.connect()
        cache = SingleRecordCache(kv)
        await cache.set(self.identity, 1, {"id": 1, "name": "a"})

        await cache.clear(self.identity, 1)

        assert await cache.get(self.identity, 1) is EMPTY

    @pytest.mark.asyncio
    async def test_clear_writes_empty_payload_with_ttl(self, kv):
        """Clearing overwrites the slot rather than deleting it."""
        await kv.connect()
        cache = SingleRecordCache(kv, default_ttl=45)

        await cache.clear(self.identity, 7)

        key = single_key(self.identity, 7)
        assert await kv.get(key) == ""
        assert kv.ttl(key) == pytest.approx(45, abs=1)

    @pytest.mark.asyncio
    async def test_empty_record_clears(self, kv):
        await kv.connect()
        cache = SingleRecordCache(kv)
        await cache.set(self.identity, 1, {"id": 1})

        await cache.set(self.identity, 1, None)

        assert await cache.get(self.identity, 1) is EMPTY

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_miss(self, kv):
        await kv.connect()
        cache = SingleRecordCache(kv)
        await kv.set(single_key(self.identity, 1), "{oops")

        assert await cache.get(self.identity, 1) is MISS

    @pytest.mark.asyncio
    async def test_unavailable_cache_degrades(self, kv):
        cache = SingleRecordCache(kv)

        assert await cache.get(self.identity, 1) is MISS
        assert await cache.set(self.identity, 1, {"id": 1}) is False
        assert await cache.clear(self.identity, 1) is False

    def test_sentinels_are_falsy(self):
        assert not MISS
        assert not EMPTY
        assert repr(MISS) == "MISS"

    @pytest.mark.asyncio
    async def test_binary_values_round_trip(self, kv):
        await kv.connect()
        cache = SingleRecordCache(kv)
        record = {"id": 1, "avatar": b"\x00\xffpng"}

        await cache.set(self.identity, 1, record)

        assert await cache.get(self.identity, 1) == record

"""
Version-tagged query-result cache.

Every entry is stored as {"ver": V, "data": ...} where V is the entity's
version counter at write time. A read is a hit only when V equals the
counter's value at read time, so invalidate_all() (one INCR) lazily retires
every cached result for the entity at once.

Known staleness window:
    set() reads the version when it stores, not when the rows were fetched.
    A reader that fetched rows from the store before a concurrent mutation
    committed, and calls set() after that mutation's bump, stores
    pre-mutation rows under the new version. The entry stays readable until
    its TTL expires or the next bump. No lock is taken to close this window.

Cache unavailability is never fatal: reads degrade to misses and writes to
no-ops, both logged.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from ..errors import KVError
from ..kv.base import KVCache
from .entry import MISS, CacheEntry, _Sentinel
from .keys import EntityIdentity, query_key
from .version import VersionCounter

logger = logging.getLogger(__name__)


class QueryResultCache:
    """Cache-aside store for arbitrary query results.

    Attributes:
        kv: KV backend
        versions: Version counter sharing the same backend
        default_ttl: TTL in seconds used when set() is called without one

    Example:
        >>> cache = QueryResultCache(kv, default_ttl=60)
        >>> fp = fingerprint({"status": 1}, None, 0, 20)
        >>> await cache.set(identity, "lbc", fp, rows)
        >>> await cache.invalidate_all(identity)
        >>> await cache.get(identity, "lbc", fp)
        MISS
    """

    def __init__(
        self,
        kv: KVCache,
        default_ttl: int = 60,
        versions: Optional[VersionCounter] = None,
    ) -> None:
        self.kv = kv
        self.versions = versions or VersionCounter(kv)
        self.default_ttl = default_ttl

    async def get(
        self,
        identity: EntityIdentity,
        tag: str,
        fp: str,
    ) -> Union[Any, _Sentinel]:
        """Look up a cached result.

        Returns:
            The cached data, or MISS on absence, version mismatch, corrupt
            blob or cache failure
        """
        key = query_key(identity, tag, fp)
        try:
            version = await self.versions.current(identity)
            raw = await self.kv.get(key)
        except KVError as e:
            logger.warning(
                "Query cache unavailable, treating as miss",
                extra={"key": key, "error": str(e)},
            )
            return MISS

        if raw is None:
            logger.debug("Query cache miss", extra={"key": key})
            return MISS

        try:
            entry = CacheEntry.from_json(raw)
        except ValueError as e:
            logger.debug("Query cache miss (corrupt entry)", extra={"key": key, "error": str(e)})
            return MISS

        if entry.version != version:
            logger.debug(
                "Query cache miss (stale version)",
                extra={"key": key, "entry_version": entry.version, "version": version},
            )
            return MISS

        return entry.data

    async def set(
        self,
        identity: EntityIdentity,
        tag: str,
        fp: str,
        data: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Store a result tagged with the current version.

        Returns:
            True if stored, False if the cache was unavailable
        """
        key = query_key(identity, tag, fp)
        try:
            version = await self.versions.current(identity)
            entry = CacheEntry(version=version, data=data)
            return await self.kv.set(
                key,
                entry.to_json(),
                self.default_ttl if ttl is None else ttl,
            )
        except KVError as e:
            logger.warning(
                "Query cache write failed",
                extra={"key": key, "error": str(e)},
            )
            return False

    async def invalidate_all(self, identity: EntityIdentity) -> Optional[int]:
        """Retire every cached result for the entity with one increment.

        Returns:
            The new version, or None if the cache was unavailable (stale
            results may then be served until their TTL expires)
        """
        try:
            return await self.versions.bump(identity)
        except KVError as e:
            logger.error(
                "Version bump failed; cached query results may be stale until TTL",
                extra={"identity": identity.root, "error": str(e)},
            )
            return None

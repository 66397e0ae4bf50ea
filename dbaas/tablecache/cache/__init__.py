"""
Cache layer for tablecache.

This module provides:
- Deterministic cache keys derived from an entity identity
- A per-entity version counter (O(1) invalidation of query results)
- A version-tagged query-result cache
- A single-record cache keyed by primary id

Invariants:
    - Identical arguments always produce identical keys
    - A query result is returned only when its version matches the counter
    - Cache failures degrade to misses; they never fail a store operation

How to change safely:
    - The key format is consumed by inspection tooling; do not change it
    - Any new query-cached read must fingerprint every result-shaping argument
"""

from .entry import EMPTY, MISS, CacheEntry
from .keys import (
    EntityIdentity,
    fingerprint,
    hash_fingerprint,
    query_key,
    single_key,
    version_key,
)
from .query import QueryResultCache
from .single import SingleRecordCache
from .version import VersionCounter

__all__ = [
    # Keys
    "EntityIdentity",
    "fingerprint",
    "hash_fingerprint",
    "query_key",
    "single_key",
    "version_key",
    # Entries
    "CacheEntry",
    "MISS",
    "EMPTY",
    # Caches
    "VersionCounter",
    "QueryResultCache",
    "SingleRecordCache",
]

"""
KV cache backends for tablecache.

This module provides a pluggable KV backend interface supporting:
- Redis (recommended for production, shared across processes)
- In-memory (for testing and single-process development)

Invariants:
    - increment() is atomic; version counters depend on it
    - Backend failures surface as KVError subclasses

How to change safely:
    - New backends must implement the KVCache protocol
    - Verify INCR atomicity under concurrent writers
"""

from .base import KVCache, create_kv_cache
from .memory import InMemoryKVCache
from .redis_backend import RedisKVCache

__all__ = [
    # Protocol
    "KVCache",
    # Factory
    "create_kv_cache",
    # Implementations
    "InMemoryKVCache",
    "RedisKVCache",
]

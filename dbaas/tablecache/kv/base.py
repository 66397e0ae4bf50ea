"""
Base protocol for KV cache backends.

The cache layer only needs three primitives from a backend: get, set with a
TTL, and an atomic increment. Everything else (versioning, key derivation,
serialization) is built on top of these.

Invariants:
    - increment() is atomic across all concurrent callers of the backend
    - get() returns None for absent or expired keys
    - Backend failures raise KVError subclasses, never backend-native errors

How to change safely:
    - Protocol changes require updating all implementations
    - New backends must be added to create_kv_cache()
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import CacheConfig


@runtime_checkable
class KVCache(Protocol):
    """Protocol for KV cache backends.

    Atomicity contract:
        - increment() must use the backend's native atomic increment
          (Redis INCR); a read-then-write increment loses updates

    Example:
        >>> kv = InMemoryKVCache()
        >>> await kv.connect()
        >>> await kv.set("tc_default_user_info_1", '{"id": 1}', 60)
        >>> await kv.increment("tc_default_user_ver")
        1
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            KVConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value.

        Returns:
            Stored string, or None if absent or expired

        Raises:
            KVError: On backend failure
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int = 0) -> bool:
        """Set a value.

        Args:
            key: Cache key
            value: Value to store
            ttl_seconds: Time to live; 0 means no expiry

        Returns:
            True if stored

        Raises:
            KVError: On backend failure
        """
        ...

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomically increment an integer value by one.

        An absent key counts as 0, so the first increment returns 1.

        Returns:
            The new value

        Raises:
            KVError: On backend failure or if the stored value is not an integer
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if a key was removed
        """
        ...


def create_kv_cache(config: "CacheConfig") -> KVCache:
    """Factory function to create a KV cache from configuration.

    Args:
        config: Cache configuration

    Returns:
        Appropriate KVCache implementation

    Raises:
        ConfigurationError: If the backend is not supported or misconfigured
    """
    from ..config import CacheBackend
    from ..errors import ConfigurationError
    from .memory import InMemoryKVCache
    from .redis_backend import RedisKVCache

    if config.backend == CacheBackend.MEMORY:
        return InMemoryKVCache()
    elif config.backend == CacheBackend.REDIS:
        if not config.redis_url:
            raise ConfigurationError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis",
                setting="CACHE_REDIS_URL",
            )
        return RedisKVCache(config.redis_url, socket_timeout=config.socket_timeout)
    else:
        raise ConfigurationError(f"Unsupported cache backend: {config.backend}")

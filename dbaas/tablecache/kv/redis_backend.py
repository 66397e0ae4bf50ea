"""
Redis KV cache implementation.

Uses redis-py's asyncio client. Suitable for multi-process deployments where
every request handler shares one cache: the version counters live here and
INCR gives the atomic increment the invalidation scheme depends on.

Invariants:
    - increment() maps to INCR (atomic server-side)
    - set() with ttl_seconds > 0 maps to SET ... EX ttl
    - redis-py exceptions never escape; they are mapped to KVError types

How to change safely:
    - Test against a real Redis before deploying connection option changes
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..errors import KVConnectionError, KVError

logger = logging.getLogger(__name__)


class RedisKVCache:
    """Redis implementation of the KVCache protocol.

    Attributes:
        redis_url: Connection URL
        socket_timeout: Per-command socket timeout in seconds

    Example:
        >>> kv = RedisKVCache("redis://localhost:6379/0")
        >>> await kv.connect()
        >>> await kv.increment("tc_default_user_ver")
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 2.0,
        client: Any = None,
    ) -> None:
        """Initialize Redis cache.

        Args:
            redis_url: Redis connection URL
            socket_timeout: Socket timeout in seconds
            client: Pre-built asyncio Redis client (tests, shared pools)
        """
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self._client: Optional[aioredis.Redis] = client
        self._connected = client is not None

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """Create the client and verify the server answers PING.

        Raises:
            KVConnectionError: If the server is unreachable
        """
        if self._connected:
            return

        if self._client is None:
            self._client = aioredis.Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
            )
        try:
            await self._client.ping()
        except RedisError as e:
            raise KVConnectionError(f"Failed to connect to Redis: {e}") from e

        self._connected = True
        logger.info("Connected to Redis")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._connected = False

    def _require_client(self, key: str) -> aioredis.Redis:
        if not self.is_connected or self._client is None:
            raise KVConnectionError("RedisKVCache is not connected", key=key)
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = self._require_client(key)
        try:
            value = await client.get(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise KVConnectionError(f"Redis GET failed: {e}", key=key) from e
        except RedisError as e:
            raise KVError(f"Redis GET failed: {e}", key=key) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int = 0) -> bool:
        client = self._require_client(key)
        try:
            if ttl_seconds > 0:
                result = await client.set(key, value, ex=ttl_seconds)
            else:
                result = await client.set(key, value)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise KVConnectionError(f"Redis SET failed: {e}", key=key) from e
        except RedisError as e:
            raise KVError(f"Redis SET failed: {e}", key=key) from e
        return bool(result)

    async def increment(self, key: str) -> int:
        client = self._require_client(key)
        try:
            return int(await client.incr(key))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise KVConnectionError(f"Redis INCR failed: {e}", key=key) from e
        except ResponseError as e:
            raise KVError(f"Value at {key} is not an integer: {e}", key=key) from e
        except RedisError as e:
            raise KVError(f"Redis INCR failed: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        client = self._require_client(key)
        try:
            return bool(await client.delete(key))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise KVConnectionError(f"Redis DEL failed: {e}", key=key) from e
        except RedisError as e:
            raise KVError(f"Redis DEL failed: {e}", key=key) from e

"""
In-memory KV cache implementation.

This module provides a dict-backed KV backend for:
- Unit tests
- Integration tests
- Local development without a Redis server

Invariants:
    - All data is lost on close() or process exit
    - Expired keys are invisible to get() and are purged lazily
    - increment() is atomic with respect to other coroutines

How to change safely:
    - Keep semantics aligned with the Redis backend (INCR on a missing key
      yields 1, INCR on a non-integer fails)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..errors import KVConnectionError, KVError

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    value: str
    expires_at: Optional[float] = None


class InMemoryKVCache:
    """In-memory implementation of the KVCache protocol.

    Attributes:
        clock: Monotonic time source used for TTL expiry

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines on one
        event loop.

    Example:
        >>> kv = InMemoryKVCache()
        >>> await kv.connect()
        >>> await kv.set("k", "v", ttl_seconds=60)
        >>> await kv.get("k")
        'v'
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize in-memory cache.

        Args:
            clock: Time source in seconds, injectable for TTL tests
        """
        self.clock = clock
        self._data: Dict[str, _Slot] = {}
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryKVCache connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._data.clear()
        logger.debug("InMemoryKVCache closed")

    def _ensure_connected(self, key: str) -> None:
        if not self._connected:
            raise KVConnectionError("InMemoryKVCache is not connected", key=key)

    def _live_slot(self, key: str) -> Optional[_Slot]:
        slot = self._data.get(key)
        if slot is None:
            return None
        if slot.expires_at is not None and slot.expires_at <= self.clock():
            del self._data[key]
            return None
        return slot

    async def get(self, key: str) -> Optional[str]:
        self._ensure_connected(key)
        async with self._lock:
            slot = self._live_slot(key)
            return slot.value if slot else None

    async def set(self, key: str, value: str, ttl_seconds: int = 0) -> bool:
        self._ensure_connected(key)
        expires_at = self.clock() + ttl_seconds if ttl_seconds > 0 else None
        async with self._lock:
            self._data[key] = _Slot(value=value, expires_at=expires_at)
        return True

    async def increment(self, key: str) -> int:
        self._ensure_connected(key)
        async with self._lock:
            slot = self._live_slot(key)
            if slot is None:
                self._data[key] = _Slot(value="1")
                return 1
            try:
                new_value = int(slot.value) + 1
            except ValueError:
                raise KVError(f"Value at {key} is not an integer", key=key)
            # INCR keeps the existing expiry
            slot.value = str(new_value)
            return new_value

    async def delete(self, key: str) -> bool:
        self._ensure_connected(key)
        async with self._lock:
            return self._data.pop(key, None) is not None

    # =========================================================================
    # Testing helpers
    # =========================================================================

    def keys(self) -> list[str]:
        """All live keys, for assertions in tests."""
        return [key for key in list(self._data) if self._live_slot(key) is not None]

    def ttl(self, key: str) -> Optional[float]:
        """Remaining TTL in seconds, None if absent or persistent."""
        slot = self._live_slot(key)
        if slot is None or slot.expires_at is None:
            return None
        return slot.expires_at - self.clock()

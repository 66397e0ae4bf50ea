"""
Per-entity version counter.

The counter is the invalidation primitive of the query-result cache: every
stored result carries the version it was computed under, and one INCR makes
every older entry unreadable. No key enumeration, no tag index.
"""

from __future__ import annotations

import logging

from ..kv.base import KVCache
from .keys import EntityIdentity, version_key

logger = logging.getLogger(__name__)


class VersionCounter:
    """Monotonic generation number stored in the KV cache.

    Invariants:
        - bump() always goes through the backend's atomic increment
        - current() never returns a negative number
        - Only the query-result cache consults the counter
    """

    def __init__(self, kv: KVCache) -> None:
        self.kv = kv

    async def bump(self, identity: EntityIdentity) -> int:
        """Increment the counter and return the new value.

        Raises:
            KVError: If the backend fails
        """
        version = await self.kv.increment(version_key(identity))
        logger.debug(
            "Version bumped",
            extra={"identity": identity.root, "version": version},
        )
        return version

    async def current(self, identity: EntityIdentity) -> int:
        """Current counter value; 0 when absent, negative or non-numeric.

        Raises:
            KVError: If the backend fails
        """
        raw = await self.kv.get(version_key(identity))
        if raw is None:
            return 0
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return 0
        return value if value > 0 else 0

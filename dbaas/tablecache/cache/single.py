"""
Single-record cache keyed by primary id.

Entries are not version tagged. Mutations keep them correct directly:
inserts and updates rewrite the slot from the write handle, deletes clear it
by writing an empty payload (same TTL) rather than deleting the key.
An empty slot is never a negative cache; readers go to the store.
"""

from __future__ import annotations

import binascii
import json
import logging
from typing import Any, Mapping, Optional, Union

from ..errors import KVError
from ..kv.base import KVCache
from .entry import EMPTY, MISS, _Sentinel, dumps, loads
from .keys import EntityIdentity, single_key

logger = logging.getLogger(__name__)


class SingleRecordCache:
    """Cache-aside store for one record per primary id.

    Attributes:
        kv: KV backend
        default_ttl: TTL in seconds used when none is given
    """

    def __init__(self, kv: KVCache, default_ttl: int = 60) -> None:
        self.kv = kv
        self.default_ttl = default_ttl

    async def get(
        self,
        identity: EntityIdentity,
        record_id: Any,
    ) -> Union[dict, _Sentinel]:
        """Look up a record.

        Returns:
            The record, EMPTY if the slot was cleared, MISS if absent,
            corrupt or the cache is unavailable
        """
        key = single_key(identity, record_id)
        try:
            raw = await self.kv.get(key)
        except KVError as e:
            logger.warning(
                "Record cache unavailable, treating as miss",
                extra={"key": key, "error": str(e)},
            )
            return MISS

        if raw is None:
            return MISS
        if raw == "":
            return EMPTY

        try:
            record = loads(raw)
        except (binascii.Error, json.JSONDecodeError):
            logger.debug("Record cache miss (corrupt entry)", extra={"key": key})
            return MISS
        if not isinstance(record, dict) or not record:
            return MISS
        return record

    async def set(
        self,
        identity: EntityIdentity,
        record_id: Any,
        record: Optional[Mapping[str, Any]],
        ttl: Optional[int] = None,
    ) -> bool:
        """Store a record; an empty or missing record clears the slot."""
        key = single_key(identity, record_id)
        payload = dumps(dict(record)) if record else ""
        try:
            return await self.kv.set(key, payload, self.default_ttl if ttl is None else ttl)
        except KVError as e:
            logger.warning(
                "Record cache write failed",
                extra={"key": key, "error": str(e)},
            )
            return False

    async def clear(
        self,
        identity: EntityIdentity,
        record_id: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Overwrite the slot with the empty payload."""
        return await self.set(identity, record_id, None, ttl)

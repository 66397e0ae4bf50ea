"""
Cache entry types and lookup sentinels.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any


class _Sentinel:
    """Named singleton returned by cache lookups."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __bool__(self) -> bool:
        return False


# Nothing usable in the cache: absent, expired, stale, corrupt or unreachable
MISS = _Sentinel("MISS")

# Single-record slot was explicitly cleared by a mutation
EMPTY = _Sentinel("EMPTY")


# Marker key for binary values; json has no bytes type
BYTES_KEY = "$bytes"


def _encode_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {BYTES_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    return str(value)


def _decode_object(obj: dict) -> Any:
    if len(obj) == 1 and isinstance(obj.get(BYTES_KEY), str):
        return base64.b64decode(obj[BYTES_KEY])
    return obj


def dumps(value: Any) -> str:
    """Serialize a cached value; bytes survive a round trip through loads()."""
    return json.dumps(value, default=_encode_default)


def loads(raw: str) -> Any:
    return json.loads(raw, object_hook=_decode_object)


@dataclass(frozen=True)
class CacheEntry:
    """Version-tagged query result.

    Serialized as {"ver": version, "data": data}.

    Attributes:
        version: Counter value the data was computed under
        data: Cached query result (JSON-serializable)
    """

    version: int
    data: Any

    def to_json(self) -> str:
        return dumps({"ver": self.version, "data": self.data})

    @classmethod
    def from_json(cls, raw: str) -> CacheEntry:
        """Parse a stored blob.

        Raises:
            ValueError: If the blob is not a well-formed entry
        """
        try:
            data = loads(raw)
        except (TypeError, binascii.Error, json.JSONDecodeError) as e:
            raise ValueError(f"Undecodable cache entry: {e}") from e
        if not isinstance(data, dict) or "ver" not in data or "data" not in data:
            raise ValueError("Cache entry is missing 'ver' or 'data'")
        try:
            version = int(data["ver"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Cache entry has a non-integer version: {e}") from e
        return cls(version=version, data=data["data"])

"""
Cache key derivation.

Key format (stable, cache-inspection tools rely on it):

    {prefix}_{db}_{table}_{tag}            single record / version counter
    {prefix}_{db}_{table}_{tag}_{md5}      query result

The md5 is taken over a compact JSON fingerprint of every argument that
shapes the result set. Arguments are serialized in call order and mappings
keep their insertion order: {"a": 1, "b": 2} and {"b": 2, "a": 1} produce
different keys and are cached separately. md5 collisions are accepted in
exchange for short keys.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

VERSION_TAG = "ver"
SINGLE_TAG = "info"


@dataclass(frozen=True)
class EntityIdentity:
    """Root of every cache key for one logical table.

    Attributes:
        prefix: Cache key prefix
        db: Logical database name
        table: Table name
    """

    prefix: str
    db: str
    table: str

    @property
    def root(self) -> str:
        return f"{self.prefix}_{self.db}_{self.table}"

    def __str__(self) -> str:
        return self.root


def _fingerprint_default(value: Any) -> Any:
    # Sets have no iteration order across processes; sort them
    if isinstance(value, (set, frozenset)):
        try:
            return sorted(value)
        except TypeError:
            return sorted(value, key=repr)
    return str(value)


def fingerprint(*args: Any) -> str:
    """Deterministic serialization of query arguments.

    Tuples serialize like lists, sets like their sorted list; other values
    JSON cannot represent fall back to str().
    """
    return json.dumps(
        list(args),
        separators=(",", ":"),
        ensure_ascii=False,
        default=_fingerprint_default,
    )


def hash_fingerprint(fp: str) -> str:
    return hashlib.md5(fp.encode("utf-8")).hexdigest()  # noqa: S324


def version_key(identity: EntityIdentity) -> str:
    return f"{identity.root}_{VERSION_TAG}"


def single_key(identity: EntityIdentity, record_id: Any) -> str:
    return f"{identity.root}_{SINGLE_TAG}_{record_id}"


def query_key(identity: EntityIdentity, tag: str, fp: str) -> str:
    """Key for a version-tagged query result.

    Args:
        identity: Entity identity
        tag: Operation tag (lbc, lbw, gcc, ...)
        fp: Fingerprint from fingerprint()
    """
    return f"{identity.root}_{tag}_{hash_fingerprint(fp)}"

"""
Cache inspection CLI for tablecache.

Commands:
- key: Print the exact cache key a model call would use
- version: Print the current version counter of a table
- bump: Increment the version counter (manual invalidation of every cached
  query result for the table)

Usage:
    python -m dbaas.tablecache.tools.cache_cli key --table user --tag lbc \\
        --args '[{"status": 1}, null, 0, 20, ""]'
    python -m dbaas.tablecache.tools.cache_cli key --table user --id 42
    python -m dbaas.tablecache.tools.cache_cli version --table user
    python -m dbaas.tablecache.tools.cache_cli bump --table user

version and bump talk to the backend from CACHE_BACKEND / CACHE_REDIS_URL
(or --redis-url). key works offline.

Invariants:
    - key output is byte-identical to what TableModel writes
    - Non-zero exit code on any failure
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional, Sequence

from ..cache.keys import EntityIdentity, fingerprint, query_key, single_key, version_key
from ..cache.version import VersionCounter
from ..config import CacheBackend, CacheConfig
from ..errors import TableCacheError
from ..kv.base import KVCache, create_kv_cache

logger = logging.getLogger(__name__)


class CacheCLI:
    """Cache key and version inspection.

    Example:
        >>> cli = CacheCLI(EntityIdentity("tc", "default", "user"))
        >>> cli.key(tag="lbc", args=[{"status": 1}, None, 0, 20, ""])
        'tc_default_user_lbc_...'
    """

    def __init__(self, identity: EntityIdentity) -> None:
        self.identity = identity

    def key(
        self,
        tag: Optional[str] = None,
        args: Optional[Sequence[Any]] = None,
        record_id: Optional[str] = None,
    ) -> str:
        """Key for a single record (record_id) or a query result (tag + args)."""
        if record_id is not None:
            return single_key(self.identity, record_id)
        if not tag:
            raise ValueError("--tag is required unless --id is given")
        return query_key(self.identity, tag, fingerprint(*(args or [])))

    def version_key(self) -> str:
        return version_key(self.identity)

    async def version(self, kv: KVCache) -> int:
        return await VersionCounter(kv).current(self.identity)

    async def bump(self, kv: KVCache) -> int:
        return await VersionCounter(kv).bump(self.identity)


def _load_cache_config(redis_url: Optional[str]) -> CacheConfig:
    if redis_url:
        return CacheConfig(backend=CacheBackend.REDIS, redis_url=redis_url)
    return CacheConfig.from_env()


async def _run_counter(cli: CacheCLI, command: str, config: CacheConfig) -> int:
    kv = create_kv_cache(config)
    await kv.connect()
    try:
        if command == "bump":
            return await cli.bump(kv)
        return await cli.version(kv)
    finally:
        await kv.close()


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="tablecache cache inspection tool")
    parser.add_argument("--prefix", default="tc", help="Cache key prefix")
    parser.add_argument("--db", default="default", help="Logical database name")
    parser.add_argument("--table", required=True, help="Table name")

    subparsers = parser.add_subparsers(dest="command", required=True)

    key_parser = subparsers.add_parser("key", help="Print a cache key")
    key_parser.add_argument("--tag", help="Operation tag (lbc, lbw, gcc, ...)")
    key_parser.add_argument(
        "--args",
        default="[]",
        help="JSON array of the call's result-shaping arguments, in call order",
    )
    key_parser.add_argument("--id", dest="record_id", help="Record id (single-record key)")

    for name, help_text in (
        ("version", "Print the current version counter"),
        ("bump", "Increment the version counter"),
    ):
        counter_parser = subparsers.add_parser(name, help=help_text)
        counter_parser.add_argument("--redis-url", help="Override CACHE_REDIS_URL")

    args = parser.parse_args(argv)
    cli = CacheCLI(EntityIdentity(args.prefix, args.db, args.table))

    if args.command == "key":
        try:
            call_args = json.loads(args.args)
        except json.JSONDecodeError as e:
            print(f"--args is not valid JSON: {e}", file=sys.stderr)
            sys.exit(2)
        if not isinstance(call_args, list):
            print("--args must be a JSON array", file=sys.stderr)
            sys.exit(2)
        try:
            print(cli.key(tag=args.tag, args=call_args, record_id=args.record_id))
        except ValueError as e:
            print(str(e), file=sys.stderr)
            sys.exit(2)
        sys.exit(0)

    config = _load_cache_config(args.redis_url)
    if config.backend == CacheBackend.MEMORY:
        logger.warning("CACHE_BACKEND=memory: counters live only in this process")

    try:
        value = asyncio.run(_run_counter(cli, args.command, config))
    except TableCacheError as e:
        print(f"{args.command} failed: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(f"{cli.version_key()} = {value}")
    sys.exit(0)


if __name__ == "__main__":
    main()

"""
Cached, read/write-routed CRUD model for one table.

TableModel is the public surface of tablecache. Each call:

1. filters the payload through the field whitelist (mutations)
2. rejects empty payloads, conditions and ids with a sentinel
   (False for mutations, None for id reads) without touching the store
3. routes to the read or write handle
4. runs the store operation
5. on success bumps the version, then refreshes the single-record cache
6. returns the store result unchanged

Caching is controlled per model by ModelConfig.single_cache_enabled and
ModelConfig.search_cache_enabled, and per read call by `cache=`.

Invariants:
    - Mutations always run on the write handle
    - A cache failure never fails a store operation
    - Only truthy results are cached; a falsy cached value is a miss
    - Left-join reads are not cached unless the caller asks for it, because
      mutations of the right-hand table do not bump this table's version

How to change safely:
    - A new cached read needs its own tag and must fingerprint every argument
      that shapes its result
    - Keep the order "store first, then cache" in every mutation path
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Union,
)

from .cache import EntityIdentity, QueryResultCache, SingleRecordCache, fingerprint
from .config import ModelConfig
from .fields import FieldFilter
from .kv.base import KVCache
from .routing import Route, RouteSelector
from .store.base import Condition, Fields, Record, Store, Where

logger = logging.getLogger(__name__)

# Ids per read-back query after an update; stays below SQLite's bound
# parameter limit
REFRESH_BATCH_SIZE = 500


def is_empty(value: Any) -> bool:
    """Emptiness test used for rejecting ids, conditions and payloads.

    None, False, 0, "", "0" and empty collections are empty.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value in ("", "0")
    if isinstance(value, (int, float)):
        return value == 0
    try:
        return len(value) == 0
    except TypeError:
        return False


class TableModel:
    """Cache-aside CRUD model over a read/write store pair.

    Attributes:
        config: Model configuration
        kv: KV cache backend shared by both caches
        query_cache: Version-tagged query-result cache
        single_cache: Single-record cache

    Example:
        >>> model = TableModel(config, read_store=read, write_store=write, cache=kv)
        >>> new_id = await model.add({"name": "a"})
        >>> await model.get_by_id(new_id)
        {'id': 1, 'name': 'a'}
        >>> async with model.transaction():
        ...     await model.update_by_id(new_id, {"name": "b"})
    """

    def __init__(
        self,
        config: ModelConfig,
        read_store: Store,
        write_store: Store,
        cache: KVCache,
        owns_cache: bool = False,
    ) -> None:
        """Bind a model to its handles.

        Args:
            config: Model configuration
            read_store: Replica handle
            write_store: Primary handle
            cache: KV cache backend
            owns_cache: Close the KV backend in close()

        Raises:
            ConfigurationError: If the configuration or whitelist is invalid
        """
        config.validate()
        self.config = config
        self.kv = cache
        self._read_store = read_store
        self._write_store = write_store
        self._owns_cache = owns_cache

        self._identity = EntityIdentity(config.cache_prefix, config.db, config.table)
        self._filter = FieldFilter(config.field_whitelist)
        self._router = RouteSelector(
            write_store,
            force_write=config.force_write,
            auto_route_on_transaction=config.auto_route_on_transaction,
        )
        self.query_cache = QueryResultCache(cache, default_ttl=config.default_ttl)
        self.single_cache = SingleRecordCache(cache, default_ttl=config.default_ttl)

        # Cache side effects of the open transaction, undone on rollback
        self._tx_record_ids: Set[Any] = set()
        self._tx_mutated = False

    async def close(self) -> None:
        """Close both store handles (and the KV backend if owned)."""
        await self._read_store.close()
        await self._write_store.close()
        if self._owns_cache:
            await self.kv.close()

    # =========================================================================
    # Accessors and runtime settings
    # =========================================================================

    @property
    def table_name(self) -> str:
        return self.config.table

    @property
    def identity(self) -> EntityIdentity:
        return self._identity

    @property
    def cache_ttl(self) -> int:
        return self.query_cache.default_ttl

    def read_store(self) -> Store:
        return self._read_store

    def write_store(self) -> Store:
        return self._write_store

    def get_store(self, write: bool = False) -> Store:
        """Handle the router picks for a read (write=False) or a mutation."""
        if self._router.choose(write) is Route.WRITE:
            return self._write_store
        return self._read_store

    def set_cache_ttl(self, seconds: int) -> None:
        """Change the TTL used for entries written from now on."""
        self.query_cache.default_ttl = seconds
        self.single_cache.default_ttl = seconds

    def set_field_whitelist(self, whitelist: Optional[Mapping[str, Any]]) -> None:
        """Replace the field whitelist.

        Raises:
            ConfigurationError: If a field declares a non-scalar type
        """
        self._filter = FieldFilter(whitelist)

    def force_write(self, enable: bool = True) -> None:
        """Route every operation to the write handle until disabled."""
        self._router.force_write = enable

    def filter_payload(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return self._filter.apply(payload)

    # =========================================================================
    # Cache helpers
    # =========================================================================

    @property
    def _caching(self) -> bool:
        return self.config.single_cache_enabled or self.config.search_cache_enabled

    def _in_transaction(self) -> bool:
        return self._write_store.transaction_status()

    async def _bump(self) -> None:
        if not self.config.search_cache_enabled:
            return
        if self._in_transaction():
            self._tx_mutated = True
        await self.query_cache.invalidate_all(self._identity)

    async def _cache_record(self, record_id: Any, record: Optional[Record]) -> None:
        """Write (or clear, when record is empty) one single-record slot."""
        if not self.config.single_cache_enabled:
            return
        if self._in_transaction():
            self._tx_record_ids.add(record_id)
        await self.single_cache.set(self._identity, record_id, record)

    async def _refresh_records(self, store: Store, ids: Sequence[Any]) -> None:
        """Re-cache rows after an edit, reading them back in batches.

        If a read fails the slots not yet refreshed are cleared before the
        error propagates, so none of them keeps its pre-edit value.
        """
        if not self.config.single_cache_enabled or not ids:
            return
        pk = self.config.primary_key
        for start in range(0, len(ids), REFRESH_BATCH_SIZE):
            batch = ids[start : start + REFRESH_BATCH_SIZE]
            try:
                rows = await store.get_by_id_list(batch)
            except BaseException:
                await self._clear_records(ids[start:])
                raise
            found = {str(row[pk]): row for row in rows}
            for record_id in batch:
                await self._cache_record(record_id, found.get(str(record_id)))

    async def _clear_records(self, ids: Iterable[Any]) -> None:
        for record_id in ids:
            await self._cache_record(record_id, None)

    def _ids_of(self, rows: Sequence[Record]) -> List[Any]:
        pk = self.config.primary_key
        return [row[pk] for row in rows]

    async def _cached_query(
        self,
        tag: str,
        args: Sequence[Any],
        cache: bool,
        load: Callable[[Store], Awaitable[Any]],
    ) -> Any:
        """Cache-aside read through the query-result cache."""
        use_cache = cache and self.config.search_cache_enabled
        fp = fingerprint(*args)
        if use_cache:
            hit = await self.query_cache.get(self._identity, tag, fp)
            if hit:
                logger.debug(
                    "Query cache hit",
                    extra={"identity": self._identity.root, "tag": tag},
                )
                return hit

        result = await load(self.get_store())

        if result and use_cache:
            await self.query_cache.set(self._identity, tag, fp, result)
        return result

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, payload: Mapping[str, Any]) -> Union[int, bool]:
        """Insert one row.

        Returns:
            New row id, or False if the filtered payload is empty or nothing
            was inserted
        """
        data = self._filter.apply(payload)
        if not data:
            return False

        store = self.get_store(write=True)
        new_id = await store.add(data)
        if new_id:
            await self._bump()
            if self.config.single_cache_enabled:
                await self._cache_record(new_id, await store.get_by_id(new_id))
        return new_id

    async def add_multi(self, payloads: Sequence[Mapping[str, Any]]) -> Union[int, bool]:
        """Insert many rows in one statement. Rows are not single-cached.

        Returns:
            Number of inserted rows, or False
        """
        rows = [row for row in (self._filter.apply(p) for p in payloads or ()) if row]
        if not rows:
            return False

        result = await self.get_store(write=True).add_multi(rows)
        if result:
            await self._bump()
        return result

    async def update_by_id(self, record_id: Any, payload: Mapping[str, Any]) -> bool:
        data = self._filter.apply(payload)
        if is_empty(record_id) or not data:
            return False

        store = self.get_store(write=True)
        ok = await store.edit_by_id(record_id, data)
        if ok and self._caching:
            await self._bump()
            if self.config.single_cache_enabled:
                await self._refresh_records(store, [record_id])
        return ok

    async def update_by_condition(self, condition: Condition, payload: Mapping[str, Any]) -> bool:
        """Update rows matching a legacy condition.

        With caching on, the affected ids are read from the write handle
        before the edit and their rows re-cached after it.
        """
        data = self._filter.apply(payload)
        if is_empty(condition) or not data:
            return False

        store = self.get_store(write=True)
        if not self._caching:
            return await store.edit_by_condition(condition, data)

        ids = self._ids_of(
            await store.get_list_by_condition(condition, [self.config.primary_key], 0, 0)
        )
        ok = await store.edit_by_condition(condition, data)
        if ok:
            await self._bump()
            await self._refresh_records(store, ids)
        return ok

    async def update_by_where(self, where: Where, payload: Mapping[str, Any]) -> bool:
        data = self._filter.apply(payload)
        if is_empty(where) or not data:
            return False

        store = self.get_store(write=True)
        if not self._caching:
            return await store.edit_by_where(where, data)

        ids = self._ids_of(await store.get_list_by_where(where, [self.config.primary_key], 0, 0))
        ok = await store.edit_by_where(where, data)
        if ok:
            await self._bump()
            await self._refresh_records(store, ids)
        return ok

    async def del_by_id(self, record_id: Any) -> bool:
        if is_empty(record_id):
            return False

        ok = await self.get_store(write=True).del_by_id(record_id)
        if ok and self._caching:
            await self._cache_record(record_id, None)
            await self._bump()
        return ok

    async def del_by_condition(self, condition: Condition) -> bool:
        if is_empty(condition):
            return False

        store = self.get_store(write=True)
        if not self._caching:
            return await store.del_by_condition(condition)

        ids = self._ids_of(
            await store.get_list_by_condition(condition, [self.config.primary_key], 0, 0)
        )
        ok = await store.del_by_condition(condition)
        if ok:
            await self._clear_records(ids)
            await self._bump()
        return ok

    async def del_by_where(self, where: Where) -> bool:
        if is_empty(where):
            return False

        store = self.get_store(write=True)
        if not self._caching:
            return await store.del_by_where(where)

        ids = self._ids_of(await store.get_list_by_where(where, [self.config.primary_key], 0, 0))
        ok = await store.del_by_where(where)
        if ok:
            await self._clear_records(ids)
            await self._bump()
        return ok

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(
        self,
        record_id: Any,
        fields: Fields = None,
        cache: bool = True,
    ) -> Optional[Record]:
        """Fetch one record by primary id.

        The single-record cache is used only when no field projection is
        requested.
        """
        if is_empty(record_id):
            return None

        use_cache = cache and self.config.single_cache_enabled and not fields
        if use_cache:
            hit = await self.single_cache.get(self._identity, record_id)
            if hit:
                return hit

        record = await self.get_store().get_by_id(record_id, fields)
        if record and use_cache:
            await self._cache_record(record_id, record)
        return record

    async def get_by_id_list(
        self,
        ids: Sequence[Any],
        fields: Fields = None,
        cache: bool = True,
    ) -> Optional[List[Record]]:
        if is_empty(ids):
            return None
        ids = list(ids)
        return await self._cached_query(
            "idarr",
            (ids, fields),
            cache,
            lambda store: store.get_by_id_list(ids, fields),
        )

    async def get_by_condition(
        self,
        condition: Condition = None,
        fields: Fields = None,
        order: str = "",
        cache: bool = True,
    ) -> Optional[Record]:
        """First record matching a legacy condition."""
        return await self._cached_query(
            "gic",
            (condition, fields, order),
            cache,
            lambda store: store.get_info_by_condition(condition or {}, fields, order),
        )

    async def get_by_where(
        self,
        where: Where = None,
        fields: Fields = None,
        order: str = "",
        cache: bool = True,
    ) -> Optional[Record]:
        return await self._cached_query(
            "giw",
            (where, fields, order),
            cache,
            lambda store: store.get_info_by_where(where or (), fields, order),
        )

    async def list_by_condition(
        self,
        condition: Condition = None,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
        cache: bool = True,
    ) -> List[Record]:
        """Rows matching a legacy condition; limit <= 0 returns all of them."""
        return await self._cached_query(
            "lbc",
            (condition, fields, offset, limit, order),
            cache,
            lambda store: store.get_list_by_condition(condition or {}, fields, offset, limit, order),
        )

    async def list_by_where(
        self,
        where: Where = None,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
        cache: bool = True,
    ) -> List[Record]:
        return await self._cached_query(
            "lbw",
            (where, fields, offset, limit, order),
            cache,
            lambda store: store.get_list_by_where(where or (), fields, offset, limit, order),
        )

    async def page_by_condition(
        self,
        condition: Condition = None,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
        cache: bool = True,
    ) -> Dict[str, Any]:
        """One page plus the total count: {"total": n, "list": rows}."""
        return await self._cached_query(
            "glpc",
            (condition, offset, limit, fields, order),
            cache,
            lambda store: store.get_data_list(condition or {}, offset, limit, fields, order),
        )

    async def page_by_where(
        self,
        where: Where = None,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
        cache: bool = True,
    ) -> Dict[str, Any]:
        return await self._cached_query(
            "glpw",
            (where, offset, limit, fields, order),
            cache,
            lambda store: store.get_data_list_by_where(where or (), offset, limit, fields, order),
        )

    async def count(self, condition: Condition = None, cache: bool = True) -> int:
        return await self._cached_query(
            "gcc",
            (condition,),
            cache,
            lambda store: store.count(condition or {}),
        )

    async def count_by_where(self, where: Where = None, cache: bool = True) -> int:
        return await self._cached_query(
            "gcw",
            (where,),
            cache,
            lambda store: store.count_by_where(where or ()),
        )

    async def sum_by_group(
        self,
        group: str = "",
        where: Where = None,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
        cache: bool = True,
    ) -> List[Record]:
        """Grouped aggregate rows, e.g. count(*) per status."""
        return await self._cached_query(
            "gcbg",
            (where, group, offset, limit, fields, order),
            cache,
            lambda store: store.sum_by_group(group, where or (), offset, limit, fields, order),
        )

    async def sum_by_group_list(
        self,
        group: str = "",
        where: Where = None,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
        cache: bool = True,
    ) -> Dict[str, Any]:
        return await self._cached_query(
            "gcbgl",
            (where, group, offset, limit, fields, order),
            cache,
            lambda store: store.sum_by_group_list(group, where or (), offset, limit, fields, order),
        )

    async def left_join_list(
        self,
        right_table: str,
        on: Mapping[str, str],
        where: Where = None,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
        cache: bool = False,
    ) -> List[Record]:
        """Rows of this table LEFT JOIN right_table.

        Args:
            right_table: Right-hand table
            on: Left column -> right column
            where: New-rule clauses; columns may be table-qualified
        """
        return await self._cached_query(
            "ljl",
            (right_table, on, where, fields, offset, limit, order),
            cache,
            lambda store: store.left_join_list(
                right_table, on, where or (), fields, offset, limit, order
            ),
        )

    async def left_join_count(
        self,
        right_table: str,
        on: Mapping[str, str],
        where: Where = None,
        cache: bool = False,
    ) -> int:
        return await self._cached_query(
            "ljc",
            (right_table, on, where),
            cache,
            lambda store: store.left_join_count(right_table, on, where or ()),
        )

    async def left_join_group_having(
        self,
        fields: Fields,
        right_table: str,
        on: Mapping[str, str],
        where: Where = None,
        group: str = "",
        having: Where = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
        cache: bool = False,
    ) -> List[Record]:
        return await self._cached_query(
            "ljgh",
            (fields, right_table, on, where, group, having, offset, limit, order),
            cache,
            lambda store: store.left_join_group_having(
                fields, right_table, on, where or (), group, having or (), offset, limit, order
            ),
        )

    # =========================================================================
    # Statement metadata
    # =========================================================================

    def last_query(self, write: bool = False) -> str:
        return self.get_store(write).last_query()

    def last_insert_id(self) -> int:
        return self._write_store.last_insert_id()

    def affected_rows(self) -> int:
        return self._write_store.affected_rows()

    # =========================================================================
    # Transactions
    # =========================================================================

    async def transaction_begin(self) -> bool:
        self._tx_record_ids.clear()
        self._tx_mutated = False
        return await self.get_store(write=True).transaction_begin()

    async def transaction_commit(self) -> bool:
        """Commit the write handle's transaction.

        If the transaction mutated rows the version is bumped once more, so
        results cached from the replica while it was open are retired. If the
        commit itself raises, the cache writes made inside the transaction are
        undone as on rollback before the error propagates.
        """
        try:
            ok = await self.get_store(write=True).transaction_commit()
        except BaseException:
            await self._undo_transaction_cache()
            raise
        mutated = self._tx_mutated
        self._tx_record_ids.clear()
        self._tx_mutated = False
        if ok and mutated:
            await self._bump()
        return ok

    async def transaction_rollback(self) -> bool:
        """Roll back and undo the cache writes made inside the transaction.

        Single-record slots written during the transaction are cleared and
        the version is bumped, since both may hold rolled-back rows. The
        cleanup runs even when the store had no open transaction left.
        """
        try:
            return await self.get_store(write=True).transaction_rollback()
        finally:
            await self._undo_transaction_cache()

    async def _undo_transaction_cache(self) -> None:
        record_ids = list(self._tx_record_ids)
        mutated = self._tx_mutated
        self._tx_record_ids.clear()
        self._tx_mutated = False
        if record_ids:
            logger.debug(
                "Clearing record cache after rollback",
                extra={"identity": self._identity.root, "count": len(record_ids)},
            )
            for record_id in record_ids:
                await self.single_cache.set(self._identity, record_id, None)
        if mutated:
            await self.query_cache.invalidate_all(self._identity)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TableModel]:
        """Run a block in a transaction on the write handle.

        Commits when the block completes; rolls back and re-raises on any
        exception, including cancellation.

        Example:
            >>> async with model.transaction():
            ...     await model.add({"name": "a"})
            ...     await model.add({"name": "b"})
        """
        await self.transaction_begin()
        try:
            yield self
            await self.transaction_commit()
        except BaseException:
            await self.transaction_rollback()
            raise

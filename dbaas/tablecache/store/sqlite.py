"""
SQLite store handle.

This module implements the Store protocol on top of the standard library
sqlite3 driver. One SqliteStore owns one connection to one database file
and targets one table. A model uses two of them:

- the write handle (primary), opened read-write in WAL mode
- the read handle (replica), opened with the read-only URI flag so that a
  misrouted mutation fails loudly instead of silently writing

Invariants:
    - One held connection per handle (transactions span calls)
    - Autocommit unless an explicit transaction is open
    - All values are bound as parameters; identifiers are validated and quoted
    - Unconditional UPDATE/DELETE statements are refused

How to change safely:
    - Keep SQL construction here; the cache layer must stay SQL-agnostic
    - Test with WAL mode on and off before changing pragmas
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import StoreConnectionError, StoreQueryError
from .base import WHERE_OPERATORS, Condition, Fields, Record, Where

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_ORDER = re.compile(r"^[A-Za-z0-9_.,()\s]*$")
_RAW_FORBIDDEN = (";", "--", "/*")

Params = List[Any]


def quote_identifier(name: str) -> str:
    """Quote a column or table name, optionally table-qualified.

    Raises:
        StoreQueryError: If the name is not a plain identifier
    """
    name = name.strip()
    if name == "*":
        return name
    if not _IDENTIFIER.match(name):
        raise StoreQueryError(f"Invalid identifier: {name!r}")
    return ".".join(f'"{part}"' for part in name.split("."))


def _check_raw(fragment: str) -> str:
    if any(token in fragment for token in _RAW_FORBIDDEN):
        raise StoreQueryError(f"Refusing raw SQL fragment: {fragment!r}")
    return fragment


def build_fields(fields: Fields) -> str:
    """Build the select list. A string is a raw expression list."""
    if not fields:
        return "*"
    if isinstance(fields, str):
        return _check_raw(fields)
    return ", ".join(quote_identifier(f) for f in fields)


def _in_clause(column: str, values: Sequence[Any], negate: bool = False) -> Tuple[str, Params]:
    if not values:
        # IN () matches nothing, NOT IN () matches everything
        return ("1 = 1" if negate else "1 = 0"), []
    placeholders = ", ".join("?" for _ in values)
    op = "NOT IN" if negate else "IN"
    return f"{column} {op} ({placeholders})", list(values)


def build_condition(condition: Optional[Condition]) -> Tuple[str, Params]:
    """Build an AND predicate from a field -> value mapping."""
    if not condition:
        return "", []
    if isinstance(condition, str):
        return _check_raw(condition), []

    parts: List[str] = []
    params: Params = []
    for name, value in condition.items():
        column = quote_identifier(name)
        if isinstance(value, (list, tuple, set, frozenset)):
            sql, values = _in_clause(column, list(value))
            parts.append(sql)
            params.extend(values)
        elif value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ?")
            params.append(value)
    return " AND ".join(parts), params


def build_where(where: Optional[Where]) -> Tuple[str, Params]:
    """Build an AND predicate from (field, value) / (field, op, value) clauses."""
    if not where:
        return "", []
    if isinstance(where, str):
        return _check_raw(where), []

    parts: List[str] = []
    params: Params = []
    for clause in where:
        if len(clause) == 2:
            name, value = clause
            op = "in" if isinstance(value, (list, tuple, set, frozenset)) else "="
        elif len(clause) == 3:
            name, op, value = clause
            op = str(op).lower().strip()
        else:
            raise StoreQueryError(f"Invalid where clause: {clause!r}")

        if op not in WHERE_OPERATORS:
            raise StoreQueryError(f"Unsupported where operator: {op!r}")

        column = quote_identifier(name)
        if op in ("in", "not in"):
            if not isinstance(value, (list, tuple, set, frozenset)):
                value = [value]
            sql, values = _in_clause(column, list(value), negate=(op == "not in"))
            parts.append(sql)
            params.extend(values)
        elif value is None and op in ("=", "!=", "<>"):
            parts.append(f"{column} IS NULL" if op == "=" else f"{column} IS NOT NULL")
        else:
            parts.append(f"{column} {op.upper()} ?")
            params.append(value)
    return " AND ".join(parts), params


def build_order(order: str) -> str:
    if not order:
        return ""
    if not _ORDER.match(order):
        raise StoreQueryError(f"Invalid order clause: {order!r}")
    return f" ORDER BY {order}"


def build_group(group: str) -> str:
    if not group:
        return ""
    return " GROUP BY " + ", ".join(quote_identifier(g) for g in group.split(","))


def build_limit(offset: int, limit: int) -> Tuple[str, Params]:
    """LIMIT/OFFSET clause; limit <= 0 means no limit."""
    if limit > 0:
        return " LIMIT ? OFFSET ?", [int(limit), max(int(offset), 0)]
    if offset > 0:
        return " LIMIT -1 OFFSET ?", [int(offset)]
    return "", []


def _where_sql(predicate: str) -> str:
    return f" WHERE {predicate}" if predicate else ""


class SqliteStore:
    """SQLite implementation of the Store protocol.

    Attributes:
        path: Database file path
        table: Table this handle operates on
        read_only: Open the connection with mode=ro (replica handle)
        wal_mode: Enable SQLite WAL journal mode (write handle only)
        busy_timeout_ms: SQLite busy timeout
        primary_key: Primary key column

    Thread safety:
        One connection per handle; use from a single event loop.

    Example:
        >>> write = SqliteStore("/var/lib/app/app.db", "user")
        >>> read = SqliteStore("/var/lib/app/app.db", "user", read_only=True)
        >>> await write.connect()
        >>> await read.connect()
    """

    def __init__(
        self,
        path: str,
        table: str,
        read_only: bool = False,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        primary_key: str = "id",
    ) -> None:
        self.path = path
        self.table = table
        self.read_only = read_only
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.primary_key = primary_key

        self._table_sql = quote_identifier(table)
        self._pk_sql = quote_identifier(primary_key)
        self._conn: Optional[sqlite3.Connection] = None
        self._last_insert_id = 0
        self._affected_rows = 0
        self._last_query = ""

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Open the connection and configure pragmas.

        Raises:
            StoreConnectionError: If the database cannot be opened
        """
        if self._conn is not None:
            return

        try:
            if self.read_only:
                uri = f"{Path(self.path).resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(
                    uri,
                    uri=True,
                    timeout=self.busy_timeout_ms / 1000.0,
                    isolation_level=None,
                )
            else:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    self.path,
                    timeout=self.busy_timeout_ms / 1000.0,
                    isolation_level=None,  # Autocommit by default, explicit transactions
                )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode and not self.read_only:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StoreConnectionError(
                f"Failed to open database {self.path}: {e}", table=self.table
            ) from e

        self._conn = conn
        logger.debug(
            "Store connected",
            extra={"path": self.path, "table": self.table, "read_only": self.read_only},
        )

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script (schema setup)."""
        conn = self._require_conn()
        try:
            conn.executescript(script)
        except sqlite3.Error as e:
            raise StoreQueryError(str(e), table=self.table, query=script) from e

    # =========================================================================
    # Execution helpers
    # =========================================================================

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreConnectionError("Store is not connected", table=self.table)
        return self._conn

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        conn = self._require_conn()
        self._last_query = sql
        try:
            return conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StoreQueryError(str(e), table=self.table, query=sql) from e

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Record]:
        return [dict(row) for row in self._execute(sql, params).fetchall()]

    def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Record]:
        row = self._execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def _fetch_scalar(self, sql: str, params: Sequence[Any] = ()) -> int:
        row = self._execute(sql, params).fetchone()
        return int(row[0]) if row is not None and row[0] is not None else 0

    def _mutate(self, sql: str, params: Sequence[Any]) -> bool:
        cursor = self._execute(sql, params)
        self._affected_rows = cursor.rowcount
        return True

    def _select(
        self,
        predicate: Tuple[str, Params],
        fields: Fields = None,
        offset: int = 0,
        limit: int = 0,
        order: str = "",
    ) -> Tuple[str, Params]:
        where_sql, params = predicate
        limit_sql, limit_params = build_limit(offset, limit)
        sql = (
            f"SELECT {build_fields(fields)} FROM {self._table_sql}"
            f"{_where_sql(where_sql)}{build_order(order)}{limit_sql}"
        )
        return sql, params + limit_params

    def _update(self, predicate: Tuple[str, Params], payload: Mapping[str, Any]) -> bool:
        where_sql, where_params = predicate
        if not payload:
            return False
        if not where_sql:
            raise StoreQueryError("Refusing UPDATE without a condition", table=self.table)
        assignments = ", ".join(f"{quote_identifier(k)} = ?" for k in payload)
        sql = f"UPDATE {self._table_sql} SET {assignments}{_where_sql(where_sql)}"
        return self._mutate(sql, list(payload.values()) + where_params)

    def _delete(self, predicate: Tuple[str, Params]) -> bool:
        where_sql, params = predicate
        if not where_sql:
            raise StoreQueryError("Refusing DELETE without a condition", table=self.table)
        return self._mutate(f"DELETE FROM {self._table_sql}{_where_sql(where_sql)}", params)

    def _pk_predicate(self, record_id: Any) -> Tuple[str, Params]:
        return f"{self._pk_sql} = ?", [record_id]

    def _join_sql(self, right_table: str, on: Mapping[str, str]) -> str:
        right_sql = quote_identifier(right_table)
        if not on:
            raise StoreQueryError("Left join requires an ON mapping", table=self.table)
        conditions = " AND ".join(
            f"{self._table_sql}.{quote_identifier(left)} = {right_sql}.{quote_identifier(right)}"
            for left, right in on.items()
        )
        return f"{self._table_sql} LEFT JOIN {right_sql} ON {conditions}"

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, payload: Mapping[str, Any]) -> Union[int, bool]:
        if not payload:
            return False
        columns = ", ".join(quote_identifier(k) for k in payload)
        placeholders = ", ".join("?" for _ in payload)
        cursor = self._execute(
            f"INSERT INTO {self._table_sql} ({columns}) VALUES ({placeholders})",
            list(payload.values()),
        )
        self._affected_rows = cursor.rowcount
        self._last_insert_id = int(cursor.lastrowid or 0)
        return self._last_insert_id or False

    async def add_multi(self, payloads: Sequence[Mapping[str, Any]]) -> Union[int, bool]:
        rows = [p for p in payloads if p]
        if not rows:
            return False

        # Union of keys in first-seen order; missing values bind as NULL
        names: List[str] = []
        for row in rows:
            for name in row:
                if name not in names:
                    names.append(name)

        columns = ", ".join(quote_identifier(n) for n in names)
        row_sql = "(" + ", ".join("?" for _ in names) + ")"
        params: Params = []
        for row in rows:
            params.extend(row.get(n) for n in names)

        cursor = self._execute(
            f"INSERT INTO {self._table_sql} ({columns}) VALUES "
            + ", ".join(row_sql for _ in rows),
            params,
        )
        self._affected_rows = cursor.rowcount
        self._last_insert_id = int(cursor.lastrowid or 0)
        return cursor.rowcount or False

    async def edit_by_id(self, record_id: Any, payload: Mapping[str, Any]) -> bool:
        return self._update(self._pk_predicate(record_id), payload)

    async def edit_by_condition(self, condition: Condition, payload: Mapping[str, Any]) -> bool:
        return self._update(build_condition(condition), payload)

    async def edit_by_where(self, where: Where, payload: Mapping[str, Any]) -> bool:
        return self._update(build_where(where), payload)

    async def del_by_id(self, record_id: Any) -> bool:
        return self._delete(self._pk_predicate(record_id))

    async def del_by_condition(self, condition: Condition) -> bool:
        return self._delete(build_condition(condition))

    async def del_by_where(self, where: Where) -> bool:
        return self._delete(build_where(where))

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(self, record_id: Any, fields: Fields = None) -> Optional[Record]:
        sql, params = self._select(self._pk_predicate(record_id), fields, limit=1)
        return self._fetch_one(sql, params)

    async def get_by_id_list(self, ids: Sequence[Any], fields: Fields = None) -> List[Record]:
        if not ids:
            return []
        sql, params = self._select(_in_clause(self._pk_sql, list(ids)), fields)
        return self._fetch_all(sql, params)

    async def get_info_by_condition(
        self, condition: Condition, fields: Fields = None, order: str = ""
    ) -> Optional[Record]:
        sql, params = self._select(build_condition(condition), fields, limit=1, order=order)
        return self._fetch_one(sql, params)

    async def get_info_by_where(
        self, where: Where, fields: Fields = None, order: str = ""
    ) -> Optional[Record]:
        sql, params = self._select(build_where(where), fields, limit=1, order=order)
        return self._fetch_one(sql, params)

    async def get_list_by_condition(
        self,
        condition: Condition,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]:
        sql, params = self._select(build_condition(condition), fields, offset, limit, order)
        return self._fetch_all(sql, params)

    async def get_list_by_where(
        self,
        where: Where,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]:
        sql, params = self._select(build_where(where), fields, offset, limit, order)
        return self._fetch_all(sql, params)

    async def get_data_list(
        self,
        condition: Condition,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
    ) -> Dict[str, Any]:
        return {
            "total": await self.count(condition),
            "list": await self.get_list_by_condition(condition, fields, offset, limit, order),
        }

    async def get_data_list_by_where(
        self,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
    ) -> Dict[str, Any]:
        return {
            "total": await self.count_by_where(where),
            "list": await self.get_list_by_where(where, fields, offset, limit, order),
        }

    async def count(self, condition: Condition) -> int:
        where_sql, params = build_condition(condition)
        return self._fetch_scalar(
            f"SELECT COUNT(*) FROM {self._table_sql}{_where_sql(where_sql)}", params
        )

    async def count_by_where(self, where: Where) -> int:
        where_sql, params = build_where(where)
        return self._fetch_scalar(
            f"SELECT COUNT(*) FROM {self._table_sql}{_where_sql(where_sql)}", params
        )

    def _group_select(
        self,
        group: str,
        where: Where,
        fields: str,
    ) -> Tuple[str, Params]:
        where_sql, params = build_where(where)
        group_columns = ", ".join(quote_identifier(g) for g in group.split(",")) if group else ""
        select_list = ", ".join(p for p in (group_columns, _check_raw(fields)) if p)
        sql = (
            f"SELECT {select_list} FROM {self._table_sql}"
            f"{_where_sql(where_sql)}{build_group(group)}"
        )
        return sql, params

    async def sum_by_group(
        self,
        group: str,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
    ) -> List[Record]:
        sql, params = self._group_select(group, where, fields)
        limit_sql, limit_params = build_limit(offset, limit)
        return self._fetch_all(f"{sql}{build_order(order)}{limit_sql}", params + limit_params)

    async def sum_by_group_list(
        self,
        group: str,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
    ) -> Dict[str, Any]:
        sql, params = self._group_select(group, where, fields)
        total = self._fetch_scalar(f"SELECT COUNT(*) FROM ({sql})", params)
        return {
            "total": total,
            "list": await self.sum_by_group(group, where, offset, limit, fields, order),
        }

    async def left_join_list(
        self,
        right_table: str,
        on: Mapping[str, str],
        where: Where,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]:
        where_sql, params = build_where(where)
        limit_sql, limit_params = build_limit(offset, limit)
        sql = (
            f"SELECT {build_fields(fields)} FROM {self._join_sql(right_table, on)}"
            f"{_where_sql(where_sql)}{build_order(order)}{limit_sql}"
        )
        return self._fetch_all(sql, params + limit_params)

    async def left_join_count(
        self, right_table: str, on: Mapping[str, str], where: Where
    ) -> int:
        where_sql, params = build_where(where)
        return self._fetch_scalar(
            f"SELECT COUNT(*) FROM {self._join_sql(right_table, on)}{_where_sql(where_sql)}",
            params,
        )

    async def left_join_group_having(
        self,
        fields: Fields,
        right_table: str,
        on: Mapping[str, str],
        where: Where,
        group: str = "",
        having: Where = (),
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]:
        where_sql, params = build_where(where)
        having_sql, having_params = build_where(having)
        limit_sql, limit_params = build_limit(offset, limit)
        sql = (
            f"SELECT {build_fields(fields)} FROM {self._join_sql(right_table, on)}"
            f"{_where_sql(where_sql)}{build_group(group)}"
            f"{' HAVING ' + having_sql if having_sql else ''}"
            f"{build_order(order)}{limit_sql}"
        )
        return self._fetch_all(sql, params + having_params + limit_params)

    # =========================================================================
    # Transactions and statement metadata
    # =========================================================================

    async def transaction_begin(self) -> bool:
        self._execute("BEGIN" if self.read_only else "BEGIN IMMEDIATE")
        return True

    async def transaction_commit(self) -> bool:
        if not self.transaction_status():
            return False
        self._execute("COMMIT")
        return True

    async def transaction_rollback(self) -> bool:
        if not self.transaction_status():
            return False
        self._execute("ROLLBACK")
        return True

    def transaction_status(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def last_insert_id(self) -> int:
        return self._last_insert_id

    def affected_rows(self) -> int:
        return self._affected_rows

    def last_query(self) -> str:
        return self._last_query


def create_store_pair(
    storage: "StorageConfig",
    table: str,
    primary_key: str = "id",
) -> Tuple[SqliteStore, SqliteStore]:
    """Build unconnected (read, write) handles for a table.

    Connect the write handle first: the read handle opens read-only and
    needs the database file to exist.

    Args:
        storage: Storage configuration
        table: Table name
        primary_key: Primary key column

    Returns:
        Tuple of (read_store, write_store)
    """
    write = SqliteStore(
        storage.write_path,
        table,
        read_only=False,
        wal_mode=storage.wal_mode,
        busy_timeout_ms=storage.busy_timeout_ms,
        primary_key=primary_key,
    )
    read = SqliteStore(
        storage.effective_read_path,
        table,
        read_only=True,
        wal_mode=storage.wal_mode,
        busy_timeout_ms=storage.busy_timeout_ms,
        primary_key=primary_key,
    )
    return read, write

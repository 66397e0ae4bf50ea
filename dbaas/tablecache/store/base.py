"""
Base protocol and types for relational store handles.

A Store is one physical connection to one table: the model holds two of
them, a read handle (replica) and a write handle (primary). The cache layer
never builds SQL itself; everything below goes through this protocol.

Condition rules:
    condition (legacy): mapping of field -> value, ANDed; a list/tuple value
        means IN. A plain string is passed through as a raw SQL predicate.
    where (new rule): sequence of clauses, ANDed, each either
        (field, value) or (field, op, value) with op one of
        =, !=, <>, >, >=, <, <=, in, not in, like, not like.
        A plain string is passed through as a raw SQL predicate.

Invariants:
    - Mutations return True/False (or the new id / row count) and never
      partially apply; failures raise StoreError
    - transaction_status() reflects this handle's own connection only
    - last_insert_id / affected_rows / last_query describe this handle only

How to change safely:
    - Protocol changes require updating all implementations and TableModel
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

Record = Dict[str, Any]
Condition = Union[Mapping[str, Any], str]
WhereClause = Sequence[Any]
Where = Union[Sequence[WhereClause], str]
Fields = Union[Sequence[str], str, None]

WHERE_OPERATORS = frozenset(
    {"=", "!=", "<>", ">", ">=", "<", "<=", "in", "not in", "like", "not like"}
)


@runtime_checkable
class Store(Protocol):
    """Protocol for a relational store handle bound to one table.

    Example:
        >>> store = SqliteStore("app.db", "user")
        >>> await store.connect()
        >>> new_id = await store.add({"name": "a"})
        >>> await store.get_by_id(new_id)
        {'id': 1, 'name': 'a'}
    """

    table: str

    # -- lifecycle ------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    # -- mutations ------------------------------------------------------------

    @abstractmethod
    async def add(self, payload: Mapping[str, Any]) -> Union[int, bool]:
        """Insert one row.

        Returns:
            New row id, or False if nothing was inserted
        """
        ...

    @abstractmethod
    async def add_multi(self, payloads: Sequence[Mapping[str, Any]]) -> Union[int, bool]:
        """Insert many rows in one statement.

        Returns:
            Number of inserted rows, or False if nothing was inserted
        """
        ...

    @abstractmethod
    async def edit_by_id(self, record_id: Any, payload: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    async def edit_by_condition(self, condition: Condition, payload: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    async def edit_by_where(self, where: Where, payload: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    async def del_by_id(self, record_id: Any) -> bool: ...

    @abstractmethod
    async def del_by_condition(self, condition: Condition) -> bool: ...

    @abstractmethod
    async def del_by_where(self, where: Where) -> bool: ...

    # -- reads ----------------------------------------------------------------

    @abstractmethod
    async def get_by_id(self, record_id: Any, fields: Fields = None) -> Optional[Record]: ...

    @abstractmethod
    async def get_by_id_list(self, ids: Sequence[Any], fields: Fields = None) -> List[Record]: ...

    @abstractmethod
    async def get_info_by_condition(
        self, condition: Condition, fields: Fields = None, order: str = ""
    ) -> Optional[Record]: ...

    @abstractmethod
    async def get_info_by_where(
        self, where: Where, fields: Fields = None, order: str = ""
    ) -> Optional[Record]: ...

    @abstractmethod
    async def get_list_by_condition(
        self,
        condition: Condition,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]: ...

    @abstractmethod
    async def get_list_by_where(
        self,
        where: Where,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]: ...

    @abstractmethod
    async def get_data_list(
        self,
        condition: Condition,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
    ) -> Dict[str, Any]:
        """Page of rows plus the total matching count: {"total": n, "list": rows}."""
        ...

    @abstractmethod
    async def get_data_list_by_where(
        self,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: Fields = None,
        order: str = "",
    ) -> Dict[str, Any]: ...

    @abstractmethod
    async def count(self, condition: Condition) -> int: ...

    @abstractmethod
    async def count_by_where(self, where: Where) -> int: ...

    @abstractmethod
    async def sum_by_group(
        self,
        group: str,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
    ) -> List[Record]: ...

    @abstractmethod
    async def sum_by_group_list(
        self,
        group: str,
        where: Where,
        offset: int = 0,
        limit: int = 20,
        fields: str = "count(*) as total",
        order: str = "",
    ) -> Dict[str, Any]:
        """Grouped page plus the number of groups: {"total": n, "list": rows}."""
        ...

    @abstractmethod
    async def left_join_list(
        self,
        right_table: str,
        on: Mapping[str, str],
        where: Where,
        fields: Fields = None,
        offset: int = 0,
        limit: int = 20,
        order: str = "",
    ) -> List[Record]: ...

    @abstractmethod
    async def left_join_count(
        self, right_table: str, on: Mapping[str, str], where: Where
    ) -> int: ...

    @abstractmethod
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
    ) -> List[Record]: ...

    # -- transactions and statement metadata ----------------------------------

    @abstractmethod
    async def transaction_begin(self) -> bool: ...

    @abstractmethod
    async def transaction_commit(self) -> bool: ...

    @abstractmethod
    async def transaction_rollback(self) -> bool: ...

    @abstractmethod
    def transaction_status(self) -> bool:
        """Whether this handle currently has an open transaction."""
        ...

    @abstractmethod
    def last_insert_id(self) -> int: ...

    @abstractmethod
    def affected_rows(self) -> int: ...

    @abstractmethod
    def last_query(self) -> str: ...

"""
Relational store handles for tablecache.

The Store protocol is the only path to the database. A model holds two
handles on the same table: a read handle (replica) and a write handle
(primary). SqliteStore is the bundled implementation.

Invariants:
    - Each handle tracks its own transaction state and statement metadata
    - Store failures raise StoreError and are never swallowed upstream

How to change safely:
    - New store backends must implement the Store protocol
    - Keep dialect-specific SQL inside the backend module
"""

from .base import (
    WHERE_OPERATORS,
    Condition,
    Fields,
    Record,
    Store,
    Where,
)
from .sqlite import SqliteStore, create_store_pair

__all__ = [
    # Protocol and types
    "Store",
    "Record",
    "Condition",
    "Where",
    "Fields",
    "WHERE_OPERATORS",
    # Implementations
    "SqliteStore",
    # Factory
    "create_store_pair",
]

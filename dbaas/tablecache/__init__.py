"""
tablecache - cached, read/write-routed table access.

This package puts a caching and routing layer in front of a relational
store's CRUD paths:
- Single records are cached by primary id and refreshed on every mutation
- Conditional query results are cached under a per-table version counter;
  one atomic increment retires all of them
- Every call is routed to the read (replica) or write (primary) handle,
  with reads promoted to the write handle while a transaction is open

Architecture:
    TableModel ──▶ RouteSelector ──▶ Store (read) / Store (write)
        │
        ├──▶ SingleRecordCache ──┐
        └──▶ QueryResultCache ───┴──▶ KVCache (memory / Redis)
                   │
                   └──▶ VersionCounter

Invariants:
    - The store is the source of truth; cache failures degrade to misses
    - Mutations always run on the write handle
    - Cache keys are {prefix}_{db}_{table}_{tag}[_{md5}]

Version: see _version.py.
"""

from ._version import __version__
from .config import (
    CacheBackend,
    CacheConfig,
    ModelConfig,
    ObservabilityConfig,
    ServiceConfig,
    StorageConfig,
)
from .errors import (
    ConfigurationError,
    KVConnectionError,
    KVError,
    StoreConnectionError,
    StoreError,
    StoreQueryError,
    TableCacheError,
)
from .factory import create_table_model
from .fields import FieldFilter, FieldKind
from .model import TableModel
from .routing import Route, RouteSelector, select_route

__all__ = [
    "__version__",
    # Model
    "TableModel",
    "create_table_model",
    # Routing and filtering
    "Route",
    "RouteSelector",
    "select_route",
    "FieldFilter",
    "FieldKind",
    # Configuration
    "CacheBackend",
    "CacheConfig",
    "StorageConfig",
    "ObservabilityConfig",
    "ModelConfig",
    "ServiceConfig",
    # Errors
    "TableCacheError",
    "ConfigurationError",
    "StoreError",
    "StoreConnectionError",
    "StoreQueryError",
    "KVError",
    "KVConnectionError",
]

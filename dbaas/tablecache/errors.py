"""
Error types for tablecache.

This module defines all exception types raised by the cache layer and its
bundled backends:
- TableCacheError: Base exception
- ConfigurationError: Invalid model or service configuration
- StoreError: Relational store failures (propagated to callers unchanged)
- KVError: KV cache failures (absorbed by the cache layer as misses)

Invariants:
    - All errors inherit from TableCacheError
    - Errors carry a code and a details dict for programmatic handling
    - Empty input on a mutating call is NOT an error; it returns a sentinel
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TableCacheError(Exception):
    """Base exception for all tablecache errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TABLECACHE_ERROR"
        self.details = details or {}


class ConfigurationError(TableCacheError):
    """Caller configuration bug.

    Raised when:
    - A field whitelist declares a non-scalar type
    - Service configuration is missing a required value

    Never retried.
    """

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )
        self.setting = setting


class StoreError(TableCacheError):
    """Relational store failure."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        table: Optional[str] = None,
        query: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "STORE_ERROR",
            details={"table": table, "query": query},
        )
        self.table = table
        self.query = query


class StoreConnectionError(StoreError):
    """Store connection is missing, closed or could not be opened."""

    def __init__(self, message: str, table: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_CONNECTION_ERROR", table=table)


class StoreQueryError(StoreError):
    """Query could not be built or was rejected by the database.

    Raised when:
    - A condition uses an unsupported operator
    - An identifier is not a plain column or table name
    - The database reports an error executing the statement
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        query: Optional[str] = None,
    ) -> None:
        super().__init__(message, code="STORE_QUERY_ERROR", table=table, query=query)


class KVError(TableCacheError):
    """KV cache failure.

    The cache layer treats these as misses; they never fail a mutation.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code or "KV_ERROR", details={"key": key})
        self.key = key


class KVConnectionError(KVError):
    """KV backend is unreachable or not connected."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, code="KV_CONNECTION_ERROR", key=key)

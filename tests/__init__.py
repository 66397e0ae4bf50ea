"""
tablecache test suite.

This package contains:
- unit/: Unit tests (no external services; Redis is mocked)
- integration/: TableModel against SQLite and the in-memory KV cache
"""

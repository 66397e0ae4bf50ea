"""
CLI tools for tablecache administration.

- cache_cli: Derive cache keys, read and bump version counters
"""

from .cache_cli import CacheCLI

__all__ = ["CacheCLI"]

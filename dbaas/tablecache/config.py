"""
Configuration management for tablecache.

Service-level settings (cache backend, store paths, logging) come from
environment variables. Per-table model settings are declared in code with
ModelConfig, optionally seeded from MODEL_* environment defaults.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets (Redis password) are never logged
    - A ModelConfig is immutable; runtime toggles live on the model instance

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep environment variable names stable, they are part of the deploy surface
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlsplit, urlunsplit

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class CacheBackend(Enum):
    """Supported KV cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


@dataclass(frozen=True)
class CacheConfig:
    """KV cache backend configuration.

    Attributes:
        backend: Which KV backend to use
        redis_url: Redis connection URL (required when backend is REDIS)
        socket_timeout: Socket timeout in seconds for cache round trips
    """

    backend: CacheBackend = CacheBackend.MEMORY
    redis_url: str | None = None
    socket_timeout: float = 2.0

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("CACHE_BACKEND", "memory").lower()
        try:
            backend = CacheBackend(backend_str)
        except ValueError:
            raise ConfigurationError(
                f"Invalid CACHE_BACKEND '{backend_str}'. Must be one of: memory, redis",
                setting="CACHE_BACKEND",
            )
        return cls(
            backend=backend,
            redis_url=os.getenv("CACHE_REDIS_URL"),
            socket_timeout=float(os.getenv("CACHE_SOCKET_TIMEOUT", "2.0")),
        )

    def redacted_url(self) -> str | None:
        """Redis URL with any password replaced."""
        if not self.redis_url:
            return None
        parts = urlsplit(self.redis_url)
        if parts.password is None:
            return self.redis_url
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
        return urlunsplit(parts._replace(netloc=netloc))


@dataclass(frozen=True)
class StorageConfig:
    """SQLite store configuration.

    Attributes:
        write_path: Database file used by the write (primary) handle
        read_path: Database file used by the read (replica) handle;
            defaults to write_path
        wal_mode: SQLite WAL mode enabled (lets the read handle see commits
            while the write handle holds a transaction)
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    write_path: str = "tablecache.db"
    read_path: str | None = None
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            write_path=os.getenv("STORE_WRITE_PATH", "tablecache.db"),
            read_path=os.getenv("STORE_READ_PATH"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )

    @property
    def effective_read_path(self) -> str:
        return self.read_path or self.write_path


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass(frozen=True)
class ModelConfig:
    """Per-table model configuration.

    Attributes:
        table: Table name
        db: Logical database name, part of every cache key
        cache_prefix: Cache key prefix
        single_cache_enabled: Cache single records by primary id
        search_cache_enabled: Cache conditional query results (version tagged)
        default_ttl: Default cache TTL in seconds
        field_whitelist: Field name -> type tag (int, float, double, string)
            used to filter insert/update payloads; empty disables filtering
        force_write: Start with every operation routed to the write handle
        auto_route_on_transaction: Route reads to the write handle while a
            transaction is open on it
        primary_key: Primary key column name
    """

    table: str
    db: str = "default"
    cache_prefix: str = "tc"
    single_cache_enabled: bool = False
    search_cache_enabled: bool = False
    default_ttl: int = 60
    field_whitelist: Mapping[str, Any] = field(default_factory=dict)
    force_write: bool = False
    auto_route_on_transaction: bool = True
    primary_key: str = "id"

    @classmethod
    def from_env(
        cls,
        table: str,
        field_whitelist: Mapping[str, Any] | None = None,
    ) -> ModelConfig:
        """Build a model config for `table` using MODEL_* environment defaults."""
        return cls(
            table=table,
            db=os.getenv("MODEL_DB", "default"),
            cache_prefix=os.getenv("MODEL_CACHE_PREFIX", "tc"),
            single_cache_enabled=_env_bool("MODEL_SINGLE_CACHE", "false"),
            search_cache_enabled=_env_bool("MODEL_SEARCH_CACHE", "false"),
            default_ttl=int(os.getenv("MODEL_CACHE_TTL", "60")),
            field_whitelist=dict(field_whitelist or {}),
            auto_route_on_transaction=_env_bool("MODEL_AUTO_RW_SWITCH", "true"),
        )

    def validate(self) -> None:
        """Validate model settings.

        Raises:
            ConfigurationError: If a setting is invalid.
        """
        if not self.table:
            raise ConfigurationError("Model table name is required", setting="table")
        if self.default_ttl < 0:
            raise ConfigurationError(
                f"default_ttl must be >= 0, got {self.default_ttl}",
                setting="default_ttl",
            )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        cache: KV cache configuration
        storage: Store configuration
        observability: Logging configuration
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If required configuration is missing or invalid.
        """
        config = cls(
            cache=CacheConfig.from_env(),
            storage=StorageConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self.cache.backend == CacheBackend.REDIS and not self.cache.redis_url:
            raise ConfigurationError(
                "CACHE_REDIS_URL is required when CACHE_BACKEND=redis",
                setting="CACHE_REDIS_URL",
            )
        if not self.storage.write_path:
            raise ConfigurationError("STORE_WRITE_PATH is required", setting="STORE_WRITE_PATH")

        if not os.path.exists(self.storage.write_path):
            logger.warning(
                f"Store database does not exist: {self.storage.write_path}. "
                "It will be created on first connect."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Service configuration loaded",
            extra={
                "cache_backend": self.cache.backend.value,
                "redis_url": self.cache.redacted_url(),
                "write_path": self.storage.write_path,
                "read_path": self.storage.effective_read_path,
                "wal_mode": self.storage.wal_mode,
                "log_level": self.observability.log_level,
            },
        )

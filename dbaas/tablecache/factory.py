"""
Explicit construction of connected TableModel instances.

Handles are built and connected once, here, and handed to the model. There
is no lazy or process-wide shared state: callers hold the model and close it.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import ModelConfig, ServiceConfig
from .kv.base import KVCache, create_kv_cache
from .model import TableModel
from .store.sqlite import create_store_pair

logger = logging.getLogger(__name__)


async def create_table_model(
    service: ServiceConfig,
    model_config: ModelConfig,
    kv: Optional[KVCache] = None,
) -> TableModel:
    """Build a connected model for one table.

    Args:
        service: Service configuration (storage paths, cache backend)
        model_config: Per-table configuration
        kv: Shared, already connected KV backend. When omitted a backend is
            created from service.cache and owned (closed) by the model.

    Returns:
        Connected TableModel

    Raises:
        ConfigurationError: If either configuration is invalid
        StoreConnectionError: If a store handle cannot be opened
        KVConnectionError: If the KV backend cannot be reached
    """
    service.validate()
    model_config.validate()

    read, write = create_store_pair(
        service.storage,
        model_config.table,
        primary_key=model_config.primary_key,
    )
    # The read handle is read-only and needs the file to exist
    await write.connect()
    await read.connect()

    owns_cache = kv is None
    if kv is None:
        kv = create_kv_cache(service.cache)
        await kv.connect()

    logger.info(
        "Table model ready",
        extra={
            "table": model_config.table,
            "db": model_config.db,
            "single_cache": model_config.single_cache_enabled,
            "search_cache": model_config.search_cache_enabled,
        },
    )
    return TableModel(model_config, read, write, kv, owns_cache=owns_cache)

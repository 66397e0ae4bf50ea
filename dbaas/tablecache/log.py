"""
Logging setup for tablecache.

Modules log through `logging.getLogger(__name__)` and attach structured
context with `extra={...}`. Applications call setup_logging() once at start.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import ObservabilityConfig

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: ObservabilityConfig | None = None) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration (defaults if not provided)
    """
    config = config or ObservabilityConfig()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("redis").setLevel(logging.WARNING)

"""
Unit tests for logging setup.
"""

import logging

import json_log_formatter
import pytest

from dbaas.tablecache.config import ObservabilityConfig
from dbaas.tablecache.log import setup_logging


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging(ObservabilityConfig(log_level="DEBUG", log_format="json"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("redis").level == logging.WARNING

    def test_text_format(self):
        setup_logging(ObservabilityConfig(log_level="warning", log_format="text"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

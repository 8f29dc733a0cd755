"""
Utility Tests
==============

Tests logging setup and the JSON log formatter.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from lexintake.utils import JsonFormatter, setup_logging


@pytest.fixture
def restore_package_logger():
    logger = logging.getLogger("lexintake")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.mark.unit
class TestLogging:

    def test_json_formatter_fields(self):
        record = logging.LogRecord("lexintake.rules.runner", logging.INFO, __file__, 1, "Intake %s ok", ("i-1",), None)
        record.created = 0.0
        entry = json.loads(JsonFormatter().format(record))
        assert entry == {
            "timestamp": "1970-01-01T00:00:00.000+00:00",
            "level": "INFO",
            "logger": "lexintake.rules.runner",
            "message": "Intake i-1 ok",
        }

    def test_json_formatter_includes_exception(self):
        try:
            raise ValueError("bad catalog")
        except ValueError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("lexintake", logging.ERROR, __file__, 1, "failed", (), exc_info)
        assert "ValueError: bad catalog" in json.loads(JsonFormatter().format(record))["exception"]

    def test_setup_replaces_handlers(self, restore_package_logger):
        setup_logging(level="debug", format_style="json")
        logger = setup_logging(level="debug", format_style="json")
        assert logger is restore_package_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
        assert logger.handlers[0].stream is sys.stderr

    def test_unknown_level_falls_back_to_info(self, restore_package_logger):
        logger = setup_logging(level="chatty")
        assert logger.level == logging.INFO
        assert not isinstance(logger.handlers[0].formatter, JsonFormatter)

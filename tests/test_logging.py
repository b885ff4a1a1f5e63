"""
Tests for structured logging helpers.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from ttlkv.config import MEMORY, Settings
from ttlkv.logging import (
    ROOT_LOGGER,
    JSONFormatter,
    current_context,
    get_logger,
    log_context,
    setup_logging,
)
from ttlkv.store import KVStore


class TestLogContext:
    """Test context variables."""

    def test_scoped_context(self) -> None:
        """Context is set inside the block and restored after."""
        assert current_context() == {}

        with log_context(store="/tmp/a.sqlite", operation="get"):
            assert current_context() == {"store": "/tmp/a.sqlite", "operation": "get"}
            with log_context(operation="set"):
                assert current_context() == {"store": "/tmp/a.sqlite", "operation": "set"}
            assert current_context()["operation"] == "get"

        assert current_context() == {}

    def test_context_captured_on_record(self, temp_dir: Path) -> None:
        """Records keep the context active when they were logged."""
        log_file = temp_dir / "ctx.jsonl"
        setup_logging(log_level="DEBUG", log_file=log_file, console_output=False)

        logger = get_logger("tests.context")
        with log_context(store="/tmp/a.sqlite", operation="get"):
            logger.debug("inside", key="k")
        logger.warning("outside")

        inside, outside = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert inside["store"] == "/tmp/a.sqlite"
        assert inside["operation"] == "get"
        assert inside["extra"] == {"key": "k"}
        assert "store" not in outside
        assert "extra" not in outside


class TestGetLogger:
    """Test logger naming."""

    def test_names_under_package(self) -> None:
        """Foreign names are placed under the ttlkv namespace."""
        assert get_logger("tests.something").name == "ttlkv.tests.something"
        assert get_logger("ttlkv.store").name == "ttlkv.store"


class TestSetupLogging:
    """Test handler configuration."""

    def test_file_lowers_logger_level(self, temp_dir: Path) -> None:
        """A log file receives DEBUG records while the console stays at its level."""
        setup_logging(log_level="WARNING", log_file=temp_dir / "kv.jsonl")

        root = logging.getLogger(ROOT_LOGGER)
        assert root.level == logging.DEBUG
        console = [h for h in root.handlers if not isinstance(h, logging.FileHandler)]
        assert [h.level for h in console] == [logging.WARNING]

    def test_silent_without_outputs(self) -> None:
        """Disabling every output leaves only a NullHandler."""
        setup_logging(console_output=False)

        handlers = logging.getLogger(ROOT_LOGGER).handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.NullHandler)


class TestJSONLogging:
    """Test the JSON file handler."""

    def test_store_activity_logged_as_json(
        self, temp_dir: Path, test_settings: Settings
    ) -> None:
        """Opening a store writes DEBUG records with structured fields."""
        log_file = temp_dir / "logs" / "kv.jsonl"
        setup_logging(log_level="DEBUG", log_file=log_file, console_output=False)

        with KVStore(MEMORY, settings=test_settings) as kv:
            kv.set("key-1", 1)
            kv.set("key-1", 2)

        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        messages = [r["message"] for r in records]

        assert "Store opened" in messages
        assert "Store closed" in messages

        conflict = next(r for r in records if r["message"] == "Insert conflict")
        assert conflict["level"] == "DEBUG"
        assert conflict["extra"]["key"] == "key-1"

        opened = next(r for r in records if r["message"] == "Store opened")
        assert opened["store"] == MEMORY
        assert opened["operation"] == "open"

    def test_formatter_includes_exception(self) -> None:
        """Exception info is rendered into the record."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "ttlkv.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "failed"
        assert "RuntimeError: boom" in payload["exception"]

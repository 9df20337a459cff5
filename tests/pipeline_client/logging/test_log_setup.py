"""Tests for logging setup and configuration."""

import io
import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import pytest

from pipeline_client.logging.setup import (
    NOISY_LOGGERS,
    get_log_file_path,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestGetLogFilePath:
    def test_dated_directory_and_name(self):
        path = get_log_file_path(Path("logs"), "receive")

        assert path.parts[0] == "logs"
        assert path.name.startswith("receive_")
        assert path.suffix == ".log"


class TestSetupLogging:
    def test_console_only(self):
        stream = io.StringIO()

        setup_logging("receive", console_level=logging.INFO, console_stream=stream)
        logging.getLogger("receive.test").info("hello console")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert "hello console" in stream.getvalue()

    def test_console_level_filters(self):
        stream = io.StringIO()

        setup_logging("receive", console_level=logging.WARNING, console_stream=stream)
        logging.getLogger("receive.test").info("hidden")

        assert stream.getvalue() == ""

    def test_json_file_handler(self, tmp_path):
        setup_logging("receive", log_dir=tmp_path, console_stream=io.StringIO())
        logging.getLogger("receive.test").debug("to file", extra={"epoch": 4})

        root = logging.getLogger()
        file_handlers = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]
        assert len(file_handlers) == 1
        file_handlers[0].flush()

        log_files = list(tmp_path.rglob("receive_*.log"))
        assert len(log_files) == 1
        entries = [json.loads(line) for line in log_files[0].read_text().splitlines()]
        entry = next(e for e in entries if e["message"] == "to file")
        assert entry["epoch"] == 4
        assert entry["level"] == "DEBUG"

    def test_file_captures_debug_below_console_level(self, tmp_path):
        stream = io.StringIO()
        setup_logging("receive", log_dir=tmp_path, console_level=logging.WARNING, console_stream=stream)

        logging.getLogger("receive.test").debug("file only")

        assert stream.getvalue() == ""
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_quieted(self):
        setup_logging("receive", console_stream=io.StringIO())

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


"""Root logger configuration for the CLI."""

import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TextIO

from pipeline_client.logging.formatters import ConsoleFormatter, JSONFormatter

LOG_BACKUP_DAYS = 7

# Chatty below WARNING during long-lived streaming connections
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.internal", "asyncio")


def get_log_file_path(log_dir: Path, name: str) -> Path:
    """``<log_dir>/<YYYY-MM-DD>/<name>_<MMDD>_<HHMM>.log``"""
    now = datetime.now()
    return log_dir / f"{now:%Y-%m-%d}" / f"{name}_{now:%m%d_%H%M}.log"


def setup_logging(
    name: str = "pipeline_client",
    log_dir: Path | None = None,
    console_level: int = logging.INFO,
    console_stream: TextIO | None = None,
) -> logging.Logger:
    """
    Log to the console and, when ``log_dir`` is set, to a daily rotated JSON file.

    Console output goes to stderr unless another stream is given; stdout is
    reserved for the envelopes printed by ``receive``. The file captures
    DEBUG and above regardless of ``console_level``.
    """
    stream = console_stream if console_stream is not None else sys.stderr
    console = logging.StreamHandler(stream)
    console.setLevel(console_level)
    console.setFormatter(ConsoleFormatter(stream=stream))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(console_level)

    log_file = None
    if log_dir is not None:
        log_file = get_log_file_path(Path(log_dir), name)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_file, when="midnight", backupCount=LOG_BACKUP_DAYS, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging initialized: file=%s", log_file)
    return logger

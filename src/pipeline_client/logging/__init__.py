"""
Structured logging module.

Provides JSON logging with context propagation.
"""

from pipeline_client.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from pipeline_client.logging.formatters import ConsoleFormatter, JSONFormatter
from pipeline_client.logging.setup import (
    get_log_file_path,
    setup_logging,
)
from pipeline_client.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "get_log_file_path",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Utilities
    "log_with_context",
    "log_exception",
]

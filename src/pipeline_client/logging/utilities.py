"""Helpers for logging with structured extras."""

import logging
from typing import Any

from pipeline_client.errors.exceptions import classify_exception

# Attributes every LogRecord already has; passing them as extras raises KeyError
_RESERVED_LOG_KEYS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

MAX_ERROR_MESSAGE_LENGTH = 500


def _extras(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in _RESERVED_LOG_KEYS}


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log ``msg`` with keyword fields attached to the record.

    Example:
        log_with_context(logger, logging.DEBUG, "Stream state -> delay",
                         stream_state="delay", epoch=3, delay_seconds=5.0)
    """
    exc_info = fields.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=_extras(fields))


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **fields: Any,
) -> None:
    """
    Log an exception with its type, category and (truncated) message.

    Exceptions outside the PipelineError hierarchy are categorized with
    classify_exception.
    """
    fields.setdefault("error_category", classify_exception(exc).value)
    fields.setdefault("error_type", type(exc).__name__)

    error_message = str(exc)
    if len(error_message) > MAX_ERROR_MESSAGE_LENGTH:
        error_message = error_message[:MAX_ERROR_MESSAGE_LENGTH] + "..."
    fields["error_message"] = error_message

    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=_extras(fields),
    )

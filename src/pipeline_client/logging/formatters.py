"""JSON (file) and console formatters."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from pipeline_client.logging.context import get_log_context

# Record extras copied into JSON entries, with the type numeric ones are coerced to
LOGGED_FIELDS: dict[str, type | None] = {
    # Stream supervision
    "epoch": int,
    "stream_state": None,
    "ping_timeout_seconds": float,
    "delay_seconds": float,
    # HTTP
    "http_method": None,
    "http_url": None,
    "http_status": int,
    # Errors
    "error_category": None,
    "error_type": None,
    "error_message": None,
    # Retries
    "operation": None,
    "attempt": int,
    "max_attempts": int,
    "delay_source": None,
}

# Query parameters masked in logged URLs
_SECRET_QUERY_PARAM = re.compile(r"([?&])(sig|token|key|secret|password|auth)=[^&]*", re.IGNORECASE)


def redact_url(url: str) -> str:
    return _SECRET_QUERY_PARAM.sub(r"\1\2=[REDACTED]", url)


def _coerce(value: Any, to: type | None) -> Any:
    if to is None:
        return value
    try:
        return to(value)
    except (TypeError, ValueError):
        return None


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the log context and known extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update((k, v) for k, v in get_log_context().items() if v)

        if record.levelno == logging.DEBUG or record.levelno >= logging.ERROR:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for field, to in LOGGED_FIELDS.items():
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = _coerce(value, to)
        if isinstance(entry.get("http_url"), str):
            entry["http_url"] = redact_url(entry["http_url"])

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    ``<time> - <LEVEL> - [topic] - [group] - [stream] [epoch:N] <message>``

    The level is colored when the target stream is a TTY.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, stream=None, **kwargs):
        super().__init__(*args, **kwargs)
        stream = stream if stream is not None else sys.stderr
        self._use_colors = hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()

        level = record.levelname
        if self._use_colors and record.levelno in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelno]}{level}{self.RESET}"

        parts = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), level]
        parts.extend(f"[{context[key]}]" for key in ("topic", "group") if context[key])

        tags = []
        if context["stream_id"]:
            tags.append(f"[{context['stream_id'][:8]}]")
        epoch = getattr(record, "epoch", None)
        if epoch is not None:
            tags.append(f"[epoch:{epoch}]")

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if tags:
            message = f"{' '.join(tags)} {message}"

        return " - ".join(parts) + f" - {message}"

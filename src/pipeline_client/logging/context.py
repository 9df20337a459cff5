"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_topic: ContextVar[str] = ContextVar("topic", default="")
_group: ContextVar[str] = ContextVar("group", default="")
_stream_id: ContextVar[str] = ContextVar("stream_id", default="")


def set_log_context(
    topic: Optional[str] = None,
    group: Optional[str] = None,
    stream_id: Optional[str] = None,
) -> None:
    if topic is not None:
        _topic.set(topic)
    if group is not None:
        _group.set(group)
    if stream_id is not None:
        _stream_id.set(stream_id)


def get_log_context() -> Dict[str, str]:
    return {
        "topic": _topic.get(),
        "group": _group.get(),
        "stream_id": _stream_id.get(),
    }


def clear_log_context() -> None:
    _topic.set("")
    _group.set("")
    _stream_id.set("")

"""Request parameters for reading from a pipeline topic."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PING_TIMEOUT = 90.0
DEFAULT_RECONNECTION_DELAY = 5.0
MIN_SYNC_INTERVAL = 5.0


class Reset(str, Enum):
    """Where to start reading when the group has no committed position."""

    EARLIEST = "earliest"
    LATEST = "latest"


class ReceiveRequest(BaseModel):
    """
    Parameters of a receive stream.

    Durations are in seconds.

    Attributes:
        sync_interval: How often the server sends SYNC envelopes; the server
            default applies when unset. At least 5 seconds when set.
        organizations: Only receive messages for these organizations
        sources: Only receive messages from these sources
        reset: Starting position when the group has no committed position
        ping_timeout: Silence after which a connection is considered dead
        reconnection_delay: Wait between the end of a connection and the next
    """

    model_config = ConfigDict(frozen=True)

    sync_interval: float | None = None
    organizations: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    reset: Reset | None = None
    ping_timeout: float = Field(default=DEFAULT_PING_TIMEOUT, gt=0)
    reconnection_delay: float = Field(default=DEFAULT_RECONNECTION_DELAY, ge=0)

    @field_validator("sync_interval")
    @classmethod
    def validate_sync_interval(cls, v: float | None) -> float | None:
        if v is not None and v < MIN_SYNC_INTERVAL:
            raise ValueError(
                f"sync_interval must be at least {MIN_SYNC_INTERVAL:g} seconds, got {v}"
            )
        return v

    @property
    def sync_interval_ms(self) -> int | None:
        if self.sync_interval is None:
            return None
        return int(self.sync_interval * 1000)


__all__ = [
    "Reset",
    "ReceiveRequest",
    "DEFAULT_PING_TIMEOUT",
    "DEFAULT_RECONNECTION_DELAY",
    "MIN_SYNC_INTERVAL",
]

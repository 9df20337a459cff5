"""
Envelope schemas for the pipeline receive stream.

The server writes a concatenation of JSON objects, one per envelope:

    {"envelopeType": "DATA", "partition": 3, "offset": 1042, "topic": "events",
     "key": "k1", "createTime": 1571152456000,
     "pipelineMessage": {"imsOrg": "org", "source": "svc", "value": {...}}}
    {"envelopeType": "PING"}
    {"envelopeType": "SYNC", "syncMarker": "opaque"}

Missing fields take zero values, unknown fields are ignored and a field of
the wrong JSON type fails validation.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class EnvelopeType(str, Enum):
    """Known envelope types. Envelopes with other types are passed through."""

    DATA = "DATA"
    SYNC = "SYNC"
    PING = "PING"
    END_OF_STREAM = "END_OF_STREAM"


class Message(BaseModel):
    """
    A message received through the pipeline.

    Attributes:
        ims_org: Organization owning the data in the message
        key: Partitioning/ordering key
        locations: Pipeline instances the message was routed through
        source: Service that generated the message
        value: The message payload, any JSON value
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    ims_org: StrictStr = Field(default="", alias="imsOrg")
    key: StrictStr = ""
    locations: tuple[StrictStr, ...] = ()
    source: StrictStr = ""
    value: Any = None

    def to_payload(self) -> dict[str, Any]:
        """Wire representation; empty optional fields are omitted, value always present."""
        payload: dict[str, Any] = {}
        if self.ims_org:
            payload["imsOrg"] = self.ims_org
        if self.key:
            payload["key"] = self.key
        if self.locations:
            payload["locations"] = list(self.locations)
        if self.source:
            payload["source"] = self.source
        payload["value"] = self.value
        return payload


class Envelope(BaseModel):
    """
    One unit of the receive stream.

    Only DATA envelopes carry partition, offset, topic, create_time and
    message; only SYNC envelopes carry a sync_marker.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    envelope_type: StrictStr = Field(default="", alias="envelopeType")
    partition: StrictInt = 0
    key: StrictStr = ""
    offset: StrictInt = 0
    topic: StrictStr = ""
    create_time: StrictInt = Field(default=0, ge=0, alias="createTime")
    message: Message = Field(default_factory=Message, alias="pipelineMessage")
    sync_marker: StrictStr = Field(default="", alias="syncMarker")

    @property
    def is_ping(self) -> bool:
        return self.envelope_type == EnvelopeType.PING

    @property
    def is_end_of_stream(self) -> bool:
        return self.envelope_type == EnvelopeType.END_OF_STREAM

    @property
    def created_at(self) -> datetime | None:
        """Creation time of a DATA envelope (create_time is in milliseconds)."""
        if not self.create_time:
            return None
        return datetime.fromtimestamp(self.create_time / 1000, tz=UTC)

    def to_payload(self) -> dict[str, Any]:
        """Wire representation of the envelope."""
        return {
            "envelopeType": self.envelope_type,
            "partition": self.partition,
            "key": self.key,
            "offset": self.offset,
            "topic": self.topic,
            "createTime": self.create_time,
            "pipelineMessage": self.message.to_payload(),
            "syncMarker": self.sync_marker,
        }


@dataclass(frozen=True)
class EnvelopeOrError:
    """
    One item delivered to the caller: either an envelope or an error.

    Exactly one of the two fields is set.
    """

    envelope: Envelope | None = None
    error: Exception | None = None

    def __post_init__(self):
        if (self.envelope is None) == (self.error is None):
            raise ValueError("exactly one of envelope or error must be set")

    @property
    def is_error(self) -> bool:
        return self.error is not None


__all__ = [
    "EnvelopeType",
    "Message",
    "Envelope",
    "EnvelopeOrError",
]

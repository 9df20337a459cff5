"""
Async client for a streaming message pipeline.

Reads topics as a continuous stream of envelopes over long-lived HTTP
responses, recovering from dropped connections, heartbeat loss and malformed
data, and acknowledges read positions through sync markers.
"""

from pipeline_client.auth import CallableTokenProvider, StaticTokenProvider
from pipeline_client.client import ClientConfig, PipelineClient
from pipeline_client.errors import (
    APIError,
    AuthError,
    ConfigurationError,
    DecodeError,
    ErrorCategory,
    PipelineError,
    ResponseDecodeError,
    StreamOpenError,
    StreamReadError,
    TransientError,
)
from pipeline_client.schemas import (
    Envelope,
    EnvelopeOrError,
    EnvelopeType,
    Message,
    ReceiveRequest,
    Reset,
)
from pipeline_client.streaming import EnvelopeStream, ReconnectingStream, StreamState

__version__ = "0.1.0"

__all__ = [
    # Client
    "PipelineClient",
    "ClientConfig",
    "StaticTokenProvider",
    "CallableTokenProvider",
    # Schemas
    "Envelope",
    "EnvelopeOrError",
    "EnvelopeType",
    "Message",
    "ReceiveRequest",
    "Reset",
    # Streaming
    "EnvelopeStream",
    "ReconnectingStream",
    "StreamState",
    # Errors
    "ErrorCategory",
    "PipelineError",
    "AuthError",
    "TransientError",
    "ConfigurationError",
    "DecodeError",
    "StreamOpenError",
    "StreamReadError",
    "APIError",
    "ResponseDecodeError",
]

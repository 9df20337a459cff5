"""
Envelope streaming engine.

Components:
    - FrameScanner / decode_envelopes: bytes -> EnvelopeOrError items
    - HeartbeatWatchdog: PING-driven liveness deadline
    - EnvelopeStream: one connection, decoder + watchdog
    - ReconnectingStream: reconnect loop across connections
"""

from pipeline_client.streaming.decoder import FrameScanner, decode_envelopes, parse_envelope
from pipeline_client.streaming.reconnect import (
    EnvelopeSource,
    ReconnectingStream,
    StreamFactory,
    StreamState,
)
from pipeline_client.streaming.stream import EnvelopeStream
from pipeline_client.streaming.watchdog import HeartbeatWatchdog

__all__ = [
    "FrameScanner",
    "decode_envelopes",
    "parse_envelope",
    "HeartbeatWatchdog",
    "EnvelopeStream",
    "EnvelopeSource",
    "ReconnectingStream",
    "StreamFactory",
    "StreamState",
]

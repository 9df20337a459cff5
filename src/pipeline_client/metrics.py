"""
Prometheus metrics for envelope stream monitoring.

Focused on essential metrics:
- Envelope counts by type
- Stream errors by kind (connect, decode, heartbeat_timeout, read)
- Reconnection attempts
- Connection health
"""

import logging

from prometheus_client import Counter, Gauge, start_http_server

from pipeline_client.schemas.envelope import EnvelopeType

logger = logging.getLogger(__name__)

# Error kinds used as the ``kind`` label of stream_errors_counter
ERROR_KIND_CONNECT = "connect"
ERROR_KIND_DECODE = "decode"
ERROR_KIND_HEARTBEAT_TIMEOUT = "heartbeat_timeout"
ERROR_KIND_READ = "read"

# Label values of envelopes_received_counter; anything else is "OTHER"
KNOWN_ENVELOPE_TYPES = frozenset(t.value for t in EnvelopeType)


# =============================================================================
# Core Metrics
# =============================================================================

envelopes_received_counter = Counter(
    "pipeline_client_envelopes_received_total",
    "Total number of envelopes received from the pipeline",
    labelnames=["topic", "envelope_type"],
)

stream_errors_counter = Counter(
    "pipeline_client_stream_errors_total",
    "Total envelope stream errors by kind",
    labelnames=["topic", "kind"],
)

reconnects_counter = Counter(
    "pipeline_client_reconnects_total",
    "Total reconnection attempts after a stream ended",
    labelnames=["topic"],
)

stream_connected_gauge = Gauge(
    "pipeline_client_stream_connected",
    "Envelope stream connection status (1=connected, 0=disconnected)",
    labelnames=["topic"],
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_envelope(topic: str, envelope_type: str) -> None:
    """Record a received envelope. Types outside EnvelopeType are counted as OTHER."""
    if envelope_type not in KNOWN_ENVELOPE_TYPES:
        envelope_type = "OTHER"
    envelopes_received_counter.labels(topic=topic, envelope_type=envelope_type).inc()


def record_stream_error(topic: str, kind: str) -> None:
    """Record a stream error."""
    stream_errors_counter.labels(topic=topic, kind=kind).inc()


def record_reconnect(topic: str) -> None:
    """Record a reconnection attempt."""
    reconnects_counter.labels(topic=topic).inc()


def update_stream_connected(topic: str, connected: bool) -> None:
    """Update envelope stream connection status."""
    stream_connected_gauge.labels(topic=topic).set(1 if connected else 0)


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on the given port."""
    start_http_server(port)
    logger.info("Metrics server listening on port %d", port)


__all__ = [
    # Metrics
    "envelopes_received_counter",
    "stream_errors_counter",
    "reconnects_counter",
    "stream_connected_gauge",
    # Error kinds
    "ERROR_KIND_CONNECT",
    "ERROR_KIND_DECODE",
    "ERROR_KIND_HEARTBEAT_TIMEOUT",
    "ERROR_KIND_READ",
    # Functions
    "record_envelope",
    "record_stream_error",
    "record_reconnect",
    "update_stream_connected",
    "start_metrics_server",
]

"""
Envelope stream for a single connection.

Fuses the decoder task with the heartbeat watchdog. The stream ends when the
body ends, after a decode error, after END_OF_STREAM, or when no PING arrived
within the ping timeout. Ending the stream always closes the body.
"""

import asyncio
import logging

from pipeline_client.errors.exceptions import BodyReadError
from pipeline_client.metrics import (
    ERROR_KIND_DECODE,
    ERROR_KIND_HEARTBEAT_TIMEOUT,
    ERROR_KIND_READ,
    record_envelope,
    record_stream_error,
)
from pipeline_client.schemas.envelope import EnvelopeOrError
from pipeline_client.streaming.decoder import decode_envelopes
from pipeline_client.streaming.watchdog import HeartbeatWatchdog
from pipeline_client.types import ByteStream

logger = logging.getLogger(__name__)


class EnvelopeStream:
    """
    Async iterator of EnvelopeOrError items read from one response body.

    Must be created inside a running event loop; decoding starts immediately.
    Pull-based: an item is only taken from the decoder when the caller asks.

    Usage:
        async with EnvelopeStream(body, ping_timeout=90.0) as stream:
            async for item in stream:
                ...
    """

    def __init__(self, body: ByteStream, ping_timeout: float, topic: str = ""):
        self.topic = topic
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._watchdog = HeartbeatWatchdog(ping_timeout)
        self._task = asyncio.create_task(
            decode_envelopes(body, self._queue),
            name=f"envelope-decoder-{topic}" if topic else "envelope-decoder",
        )
        self._finished = False
        self._reaped = False

    @property
    def finished(self) -> bool:
        return self._finished

    def __aiter__(self) -> "EnvelopeStream":
        return self

    async def __anext__(self) -> EnvelopeOrError:
        if self._finished:
            raise StopAsyncIteration

        try:
            item = await self._watchdog.wait(self._queue)
        except TimeoutError:
            logger.warning(
                "No heartbeat within %.1fs, closing stream",
                self._watchdog.timeout,
                extra={"ping_timeout_seconds": self._watchdog.timeout},
            )
            record_stream_error(self.topic, ERROR_KIND_HEARTBEAT_TIMEOUT)
            await self.aclose()
            raise StopAsyncIteration

        if item is None:
            await self.aclose()
            raise StopAsyncIteration

        if item.is_error:
            logger.warning(
                "Envelope stream failed: %s",
                item.error,
                extra={"error_message": str(item.error)[:200]},
            )
            kind = ERROR_KIND_READ if isinstance(item.error, BodyReadError) else ERROR_KIND_DECODE
            record_stream_error(self.topic, kind)
            await self.aclose()
            return item

        envelope = item.envelope
        record_envelope(self.topic, envelope.envelope_type)

        if envelope.is_ping:
            self._watchdog.beat()
        elif envelope.is_end_of_stream:
            logger.info("End of stream received")
            await self.aclose()

        return item

    async def aclose(self) -> None:
        """Stop decoding and release the body. Safe to call more than once."""
        self._finished = True
        if self._reaped:
            return
        if not self._task.done():
            self._task.cancel()
        (outcome,) = await asyncio.gather(self._task, return_exceptions=True)
        self._reaped = True
        if isinstance(outcome, Exception):
            logger.warning(
                "Envelope decoder ended with an error: %s",
                outcome,
                extra={"error_type": type(outcome).__name__},
            )

    async def __aenter__(self) -> "EnvelopeStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


__all__ = ["EnvelopeStream"]

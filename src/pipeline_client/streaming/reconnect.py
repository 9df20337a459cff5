"""
Automatically reconnecting envelope stream.

A supervisor task opens envelope streams through a factory, forwards every
item they produce to one output queue and, whenever a stream ends, waits the
reconnection delay before opening the next one. It runs until the caller
closes the stream.

State machine:
    IDLE -> CONNECTING -> STREAMING -> DELAY -> CONNECTING -> ...
    Any state -> CANCELLED on aclose()
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Protocol

from pipeline_client.errors.exceptions import (
    StreamOpenError,
    StreamReadError,
    classify_exception,
)
from pipeline_client.logging.context import set_log_context
from pipeline_client.logging.utilities import log_exception, log_with_context
from pipeline_client.metrics import (
    ERROR_KIND_CONNECT,
    ERROR_KIND_READ,
    record_reconnect,
    record_stream_error,
    update_stream_connected,
)
from pipeline_client.schemas.envelope import EnvelopeOrError

logger = logging.getLogger(__name__)


class EnvelopeSource(Protocol):
    """An async iterator of EnvelopeOrError that can be closed early."""

    def __aiter__(self) -> AsyncIterator[EnvelopeOrError]: ...

    def __anext__(self) -> Awaitable[EnvelopeOrError]: ...

    async def aclose(self) -> None: ...


StreamFactory = Callable[[], Awaitable[EnvelopeSource]]


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DELAY = "delay"
    CANCELLED = "cancelled"


class ReconnectingStream:
    """
    Continuous stream of EnvelopeOrError items across reconnections.

    Connection failures are delivered in-band as StreamOpenError items and
    decode failures as the DecodeError items produced by the envelope stream.
    The output only ends when the caller closes the stream.

    Args:
        factory: Coroutine function opening one envelope stream
        reconnection_delay: Seconds to wait after a stream ends
        topic: Topic name used for logging and metrics

    Usage:
        async with ReconnectingStream(factory, reconnection_delay=5.0) as stream:
            async for item in stream:
                if item.is_error:
                    ...
    """

    def __init__(
        self,
        factory: StreamFactory,
        reconnection_delay: float,
        topic: str = "",
    ):
        self._factory = factory
        self.reconnection_delay = reconnection_delay
        self.topic = topic
        self.stream_id = uuid.uuid4().hex
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None
        self._state = StreamState.IDLE
        self._epoch = 0
        self._closed = False
        # Item taken from the queue for a caller that was cancelled before it returned
        self._pending: EnvelopeOrError | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def epoch(self) -> int:
        """Number of connection attempts made so far."""
        return self._epoch

    def start(self) -> None:
        """Start the supervisor task. Called implicitly on first use."""
        if self._task is not None or self._closed:
            return
        self._task = asyncio.create_task(
            self._supervise(), name=f"reconnecting-stream-{self.stream_id[:8]}"
        )

    def _transition(self, state: StreamState, **fields) -> None:
        self._state = state
        log_with_context(
            logger,
            logging.DEBUG,
            f"Stream state -> {state.value}",
            stream_state=state.value,
            epoch=self._epoch,
            **fields,
        )

    async def _supervise(self) -> None:
        set_log_context(topic=self.topic or None, stream_id=self.stream_id)
        try:
            while True:
                self._epoch += 1
                if self._epoch > 1:
                    record_reconnect(self.topic)
                self._transition(StreamState.CONNECTING)

                try:
                    source = await self._factory()
                except Exception as e:
                    error = StreamOpenError(e)
                    log_exception(
                        logger,
                        error,
                        "Failed to open envelope stream",
                        level=logging.WARNING,
                        include_traceback=False,
                        epoch=self._epoch,
                        error_category=classify_exception(e).value,
                    )
                    record_stream_error(self.topic, ERROR_KIND_CONNECT)
                    await self._queue.put(EnvelopeOrError(error=error))
                else:
                    self._transition(StreamState.STREAMING)
                    update_stream_connected(self.topic, True)
                    try:
                        failed = await self._pump(source)
                    finally:
                        update_stream_connected(self.topic, False)

                    log_with_context(
                        logger,
                        logging.WARNING if failed else logging.INFO,
                        "Envelope stream ended with an error"
                        if failed
                        else "Envelope stream closed",
                        epoch=self._epoch,
                    )

                self._transition(
                    StreamState.DELAY, delay_seconds=self.reconnection_delay
                )
                await asyncio.sleep(self.reconnection_delay)
        except asyncio.CancelledError:
            self._state = StreamState.CANCELLED
            raise

    async def _pump(self, source: EnvelopeSource) -> bool:
        """Forward every item of one source. Returns True if it ended with an error."""
        failed = False
        async with contextlib.aclosing(source):
            try:
                async for item in source:
                    if item.is_error:
                        failed = True
                    await self._queue.put(item)
            except Exception as e:
                failed = True
                log_exception(
                    logger,
                    e,
                    "Envelope source raised while streaming",
                    level=logging.WARNING,
                    epoch=self._epoch,
                )
                record_stream_error(self.topic, ERROR_KIND_READ)
                await self._queue.put(EnvelopeOrError(error=StreamReadError(e)))
        return failed

    def __aiter__(self) -> "ReconnectingStream":
        return self

    async def __anext__(self) -> EnvelopeOrError:
        if self._closed:
            raise StopAsyncIteration
        self.start()

        if self._pending is not None:
            item, self._pending = self._pending, None
            return item
        if not self._queue.empty():
            return self._queue.get_nowait()

        getter = asyncio.ensure_future(self._queue.get())
        try:
            done, _ = await asyncio.wait(
                {getter, self._task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            if getter.done() and not getter.cancelled():
                self._pending = getter.result()
            raise
        finally:
            if not getter.done():
                getter.cancel()

        if getter in done:
            return getter.result()

        # Supervisor ended: closed by the caller or crashed
        if self._closed or self._task.cancelled():
            raise StopAsyncIteration
        error = self._task.exception()
        if error is not None:
            raise error
        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Cancel the supervisor, closing the active connection. Idempotent."""
        self._closed = True
        if self._task is None:
            self._state = StreamState.CANCELLED
            return
        if not self._task.done():
            self._task.cancel()
        (outcome,) = await asyncio.gather(self._task, return_exceptions=True)
        self._state = StreamState.CANCELLED
        if isinstance(outcome, Exception):
            log_exception(logger, outcome, "Reconnecting stream supervisor failed")

    async def __aenter__(self) -> "ReconnectingStream":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


__all__ = [
    "EnvelopeSource",
    "StreamFactory",
    "StreamState",
    "ReconnectingStream",
]

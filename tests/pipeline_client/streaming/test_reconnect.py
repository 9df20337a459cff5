"""
Tests for ReconnectingStream supervision and cancellation.
"""

import asyncio

import pytest

from fakes import FakeSource, GatedSource, data_item
from pipeline_client.errors.exceptions import DecodeError, StreamOpenError, StreamReadError
from pipeline_client.schemas.envelope import EnvelopeOrError
from pipeline_client.streaming.reconnect import ReconnectingStream, StreamState

RECONNECTS = "pipeline_client_reconnects_total"
STREAM_ERRORS = "pipeline_client_stream_errors_total"


class ScriptedFactory:
    """Returns the prepared sources (or raises the prepared errors) in order."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls = 0
        self.call_times: list[float] = []
        self.sources: list[FakeSource] = []

    async def __call__(self):
        self.calls += 1
        self.call_times.append(asyncio.get_running_loop().time())
        if self._outcomes:
            outcome = self._outcomes.pop(0)
        else:
            outcome = FakeSource(block=True)
        if isinstance(outcome, Exception):
            raise outcome
        self.sources.append(outcome)
        return outcome


async def take(stream: ReconnectingStream, n: int) -> list[EnvelopeOrError]:
    return [await asyncio.wait_for(stream.__anext__(), timeout=2.0) for _ in range(n)]


class TestReconnectingStream:
    """Tests for the supervisor loop."""

    @pytest.mark.asyncio
    async def test_epochs_delivered_in_order(self):
        factory = ScriptedFactory(
            FakeSource([data_item(1), data_item(2)]),
            FakeSource([data_item(3)]),
        )

        async with ReconnectingStream(factory, reconnection_delay=0.0) as stream:
            items = await take(stream, 3)

        assert [i.envelope.offset for i in items] == [1, 2, 3]
        assert factory.calls >= 2

    @pytest.mark.asyncio
    async def test_factory_error_forwarded_then_retried(self):
        delay = 0.05
        factory = ScriptedFactory(RuntimeError("boom"), FakeSource([data_item(1)]))

        async with ReconnectingStream(factory, reconnection_delay=delay) as stream:
            first, second = await take(stream, 2)

        assert isinstance(first.error, StreamOpenError)
        assert str(first.error) == "get stream: boom"
        assert second.envelope.offset == 1
        assert factory.call_times[1] - factory.call_times[0] >= delay * 0.9

    @pytest.mark.asyncio
    async def test_decode_error_forwarded_then_reconnects(self):
        factory = ScriptedFactory(
            FakeSource([data_item(1), EnvelopeOrError(error=DecodeError("unexpected EOF"))]),
            FakeSource([data_item(2)]),
        )

        async with ReconnectingStream(factory, reconnection_delay=0.0) as stream:
            items = await take(stream, 3)

        assert items[0].envelope.offset == 1
        assert isinstance(items[1].error, DecodeError)
        assert items[2].envelope.offset == 2

    @pytest.mark.asyncio
    async def test_source_exception_becomes_read_error(self, metric_value):
        before = metric_value(STREAM_ERRORS, topic="flaky", kind="read")
        factory = ScriptedFactory(
            FakeSource([data_item(1)], raise_exc=ConnectionResetError("reset")),
        )

        async with ReconnectingStream(factory, reconnection_delay=0.0, topic="flaky") as stream:
            first, second = await take(stream, 2)

        assert first.envelope.offset == 1
        assert isinstance(second.error, StreamReadError)
        assert str(second.error) == "read stream: reset"
        assert factory.sources[0].closed
        assert metric_value(STREAM_ERRORS, topic="flaky", kind="read") == before + 1

    @pytest.mark.asyncio
    async def test_source_closed_before_next_factory_call(self):
        closed_at_call = []
        first = FakeSource([data_item(1)])

        async def factory():
            closed_at_call.append(first.closed)
            return first if len(closed_at_call) == 1 else FakeSource(block=True)

        async with ReconnectingStream(factory, reconnection_delay=0.0) as stream:
            await take(stream, 1)
            while len(closed_at_call) < 2:
                await asyncio.sleep(0.001)

        assert closed_at_call == [False, True]

    @pytest.mark.asyncio
    async def test_delay_applies_after_clean_close(self, metric_value):
        delay = 0.05
        before = metric_value(RECONNECTS, topic="clean")
        factory = ScriptedFactory(
            FakeSource([data_item(1)]), FakeSource([data_item(2)], block=True)
        )

        async with ReconnectingStream(factory, reconnection_delay=delay, topic="clean") as stream:
            await take(stream, 2)

        assert factory.call_times[1] - factory.call_times[0] >= delay * 0.9
        assert metric_value(RECONNECTS, topic="clean") == before + 1


class TestReconnectingStreamCancellation:
    """Closing the stream ends iteration from every supervisor state."""

    @pytest.mark.asyncio
    async def test_close_while_connecting(self):
        entered = asyncio.Event()
        calls = 0

        async def slow_factory():
            nonlocal calls
            calls += 1
            entered.set()
            await asyncio.sleep(10)

        stream = ReconnectingStream(slow_factory, reconnection_delay=0.0)
        stream.start()
        await entered.wait()
        assert stream.state == StreamState.CONNECTING

        await asyncio.wait_for(stream.aclose(), timeout=1.0)

        assert stream.state == StreamState.CANCELLED
        assert calls == 1
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_close_while_streaming(self):
        factory = ScriptedFactory(FakeSource([data_item(1)], block=True))
        stream = ReconnectingStream(factory, reconnection_delay=0.0)

        await take(stream, 1)
        assert stream.state == StreamState.STREAMING

        await asyncio.wait_for(stream.aclose(), timeout=1.0)

        assert factory.sources[0].closed
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_close_while_delaying(self):
        factory = ScriptedFactory(FakeSource([data_item(1)]))
        stream = ReconnectingStream(factory, reconnection_delay=10.0)

        await take(stream, 1)
        while stream.state != StreamState.DELAY:
            await asyncio.sleep(0.001)

        await asyncio.wait_for(stream.aclose(), timeout=1.0)

        assert factory.calls == 1
        assert stream.state == StreamState.CANCELLED

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        factory = ScriptedFactory(FakeSource(block=True))
        stream = ReconnectingStream(factory, reconnection_delay=0.0)

        async def consume():
            return [item async for item in stream]

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        await stream.aclose()

        assert await asyncio.wait_for(consumer, timeout=1.0) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("spins", range(8))
    async def test_cancelled_read_does_not_lose_item(self, spins):
        # Cancel the waiting caller at every point between release and hand-over
        source = GatedSource()
        factory = ScriptedFactory(source)

        async with ReconnectingStream(factory, reconnection_delay=0.0) as stream:
            reader = asyncio.create_task(stream.__anext__())
            await asyncio.sleep(0.01)

            source.release(data_item(1))
            for _ in range(spins):
                await asyncio.sleep(0)
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

            if reader.cancelled():
                (item,) = await take(stream, 1)
            else:
                item = reader.result()

        assert item.envelope.offset == 1

    @pytest.mark.asyncio
    async def test_close_before_start(self):
        factory = ScriptedFactory()
        stream = ReconnectingStream(factory, reconnection_delay=0.0)

        await stream.aclose()

        assert factory.calls == 0
        assert stream.state == StreamState.CANCELLED
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()


class TestReconnectingStreamStates:
    @pytest.mark.asyncio
    async def test_idle_until_started(self):
        stream = ReconnectingStream(ScriptedFactory(), reconnection_delay=0.0)
        assert stream.state == StreamState.IDLE
        assert stream.epoch == 0
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_epoch_counts_attempts(self):
        factory = ScriptedFactory(RuntimeError("a"), RuntimeError("b"), FakeSource([data_item(1)], block=True))

        async with ReconnectingStream(factory, reconnection_delay=0.0) as stream:
            items = await take(stream, 3)
            assert stream.epoch == 3

        assert [type(i.error) for i in items[:2]] == [StreamOpenError, StreamOpenError]

"""
Tests for the heartbeat deadline.
"""

import asyncio

import pytest

from pipeline_client.streaming.watchdog import HeartbeatWatchdog


class TestHeartbeatWatchdog:
    @pytest.mark.asyncio
    async def test_initial_deadline(self):
        loop = asyncio.get_running_loop()
        before = loop.time()
        watchdog = HeartbeatWatchdog(10.0)
        assert before + 10.0 <= watchdog.deadline <= loop.time() + 10.0
        assert not watchdog.expired

    @pytest.mark.asyncio
    async def test_beat_pushes_deadline(self):
        watchdog = HeartbeatWatchdog(0.05)
        first = watchdog.deadline
        await asyncio.sleep(0.02)
        watchdog.beat()
        assert watchdog.deadline > first

    @pytest.mark.asyncio
    async def test_wait_returns_queued_item(self):
        queue = asyncio.Queue(maxsize=1)
        queue.put_nowait("item")
        watchdog = HeartbeatWatchdog(1.0)
        assert await watchdog.wait(queue) == "item"

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        queue = asyncio.Queue(maxsize=1)
        watchdog = HeartbeatWatchdog(0.05)
        loop = asyncio.get_running_loop()
        start = loop.time()

        with pytest.raises(TimeoutError):
            await watchdog.wait(queue)

        assert loop.time() - start >= 0.05
        assert watchdog.expired

    @pytest.mark.asyncio
    async def test_expired_deadline_wins_over_queued_item(self):
        queue = asyncio.Queue(maxsize=1)
        watchdog = HeartbeatWatchdog(0.01)
        queue.put_nowait("late")
        await asyncio.sleep(0.03)

        assert watchdog.expired
        with pytest.raises(TimeoutError):
            await watchdog.wait(queue)
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_wait_receives_item_put_later(self):
        queue = asyncio.Queue(maxsize=1)
        watchdog = HeartbeatWatchdog(1.0)

        async def producer():
            await asyncio.sleep(0.02)
            await queue.put("later")

        task = asyncio.create_task(producer())
        assert await watchdog.wait(queue) == "later"
        await task

    @pytest.mark.asyncio
    async def test_deadline_moved_while_waiting(self):
        # A beat from another task extends a wait that is already in progress
        queue = asyncio.Queue(maxsize=1)
        watchdog = HeartbeatWatchdog(0.05)

        async def keep_alive():
            for _ in range(4):
                await asyncio.sleep(0.03)
                watchdog.beat()
            await queue.put("done")

        task = asyncio.create_task(keep_alive())
        assert await watchdog.wait(queue) == "done"
        await task

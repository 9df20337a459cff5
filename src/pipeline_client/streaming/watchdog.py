"""Heartbeat deadline for envelope streams."""

import asyncio
from typing import Any


class HeartbeatWatchdog:
    """
    Re-armable absolute deadline based on the event loop clock.

    The deadline starts at ``now + timeout`` and is pushed to
    ``now + timeout`` by every ``beat()``.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + timeout

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def expired(self) -> bool:
        return self._loop.time() >= self._deadline

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._loop.time())

    def beat(self) -> None:
        self._deadline = self._loop.time() + self.timeout

    async def wait(self, queue: asyncio.Queue) -> Any:
        """
        Take the next item from ``queue`` before the deadline.

        The deadline is checked before the queue, so a backlog built up by a
        slow consumer does not keep an expired stream alive.

        Raises:
            TimeoutError: The deadline elapsed
        """
        while True:
            if self.expired:
                raise TimeoutError(
                    f"no heartbeat within {self.timeout:g} seconds"
                )
            if not queue.empty():
                return queue.get_nowait()
            try:
                async with asyncio.timeout_at(self._deadline):
                    return await queue.get()
            except TimeoutError:
                # Timers can fire slightly early; the loop re-checks the deadline
                continue


__all__ = ["HeartbeatWatchdog"]

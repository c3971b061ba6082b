"""Fixed-period tick source for the mining simulation."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

TickConsumer = Callable[[int], Awaitable[bool]]


class SessionClock:
    """Push clock that awaits its consumer once per period.

    Ticks are numbered from 1 and delivered strictly in order. The consumer
    returns ``False`` to end the clock. Deadlines advance by a fixed period, so
    time spent in the consumer does not accumulate drift; a late tick is
    delivered immediately rather than bursting to catch up.
    """

    def __init__(self, period_seconds: float, *, name: str = "session-clock", logger: logging.Logger | None = None) -> None:
        if period_seconds < 0:
            raise ValueError("period_seconds must be >= 0")
        self._period = period_seconds
        self._name = name
        self._logger = logger or logging.getLogger("mc_miner.clock")
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, consumer: TickConsumer) -> None:
        if self.running:
            raise RuntimeError("Clock is already running")
        self._stopped = False
        self._task = asyncio.create_task(self._run(consumer), name=self._name)

    async def wait(self) -> None:
        """Wait until the clock ends on its own."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Stop the clock; no tick is delivered after this returns."""
        self._stopped = True
        task = self._task
        if task is None or task is asyncio.current_task():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        self._logger.debug("clock_stopped", extra={"clock": self._name})

    async def _run(self, consumer: TickConsumer) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        tick = 0
        while not self._stopped:
            tick += 1
            if not await consumer(tick):
                break

            deadline += self._period
            delay = deadline - loop.time()
            if delay < 0:
                deadline = loop.time()
                delay = 0
            await asyncio.sleep(delay)

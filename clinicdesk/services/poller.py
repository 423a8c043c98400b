# cancellable periodic task bound to the lifetime of a screen

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """runs `func` every `interval` seconds until stopped; a failed run does not end the loop"""

    def __init__(self, interval: float, func: Callable[[], Awaitable[object]], name: str = "poll"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.func = func
        self.name = name
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.info(f"Started {self.name} every {self.interval:g}s")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.func()
            except Exception as e:
                self.failures += 1
                logger.error(f"{self.name} run failed: {e!r}")

    async def stop(self):
        """cancel the loop and wait for it to unwind"""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info(f"Stopped {self.name}")

"""Recurring trigger for the drain worker."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("relay.schedule")


class RecurringTask:
    """Runs a coroutine function every ``interval_seconds``, one run at a time."""

    def __init__(self, name: str, interval_seconds: float) -> None:
        self.name = name
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, callback: Callable[[], Awaitable[object]]) -> bool:
        """Start the loop unless it is already running. Returns True when started."""

        if self.scheduled:
            return False
        self._task = asyncio.create_task(self._loop(callback), name=self.name)
        logger.info("Scheduled %s every %ss", self.name, self.interval_seconds)
        return True

    async def clear(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Cleared schedule for %s", self.name)

    async def _loop(self, callback: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await callback()
            except Exception as exc:
                logger.exception("%s run failed: %s", self.name, exc)

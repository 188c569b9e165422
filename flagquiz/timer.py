"""Local game countdown, independent of the server clock."""

import asyncio
import logging
from typing import Awaitable, Callable

from .config import TICK_SECONDS

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Awaitable[None]]
ExpireCallback = Callable[[], Awaitable[None]]


def task_done_callback(task: asyncio.Task):
    """Log exceptions from background tasks instead of silently swallowing."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


class TimerCoordinator:
    """Counts down one second per tick and fires ``on_expire`` once at zero.

    ``stop()`` may be called from anywhere, including from inside the tick
    or expiry callbacks; after it returns no further callback runs.
    """

    def __init__(
        self,
        on_tick: TickCallback,
        on_expire: ExpireCallback,
        *,
        tick_seconds: float = TICK_SECONDS,
    ):
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._tick_seconds = tick_seconds
        self._task: asyncio.Task | None = None
        self._stopped = False
        self.remaining: int = 0

    @property
    def running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    def start(self, seconds: int) -> None:
        if self._task is not None:
            logger.debug("Timer already started, ignoring start(%d)", seconds)
            return
        self.remaining = max(0, seconds)
        self._stopped = False
        self._task = asyncio.ensure_future(self._run())
        self._task.add_done_callback(task_done_callback)
        logger.info("Game timer started: %ds", self.remaining)

    async def _run(self):
        while self.remaining > 0:
            await asyncio.sleep(self._tick_seconds)
            if self._stopped:
                return
            self.remaining -= 1
            await self._on_tick(self.remaining)
            if self._stopped:
                return
        logger.info("Game timer expired")
        await self._on_expire()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        # Cancelling ourselves from inside a callback would abort the
        # callback mid-way; the _stopped flag ends the loop instead.
        if task is asyncio.current_task():
            return
        task.cancel()

"""Periodic background jobs on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicJob:
    """Run ``callback`` every ``interval`` seconds until cancelled.

    The first run happens one interval after :meth:`start`. Exceptions raised
    by the callback are logged and the loop keeps going.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        *,
        name: str = "periodic-job",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.debug("Started %s (every %.1fs)", self._name, self._interval)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("%s run failed: %s", self._name, exc)
            self.runs += 1

    async def cancel(self) -> None:
        """Stop the job and wait for the task to finish."""

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("Cancelled %s", self._name)


__all__ = ["PeriodicJob"]

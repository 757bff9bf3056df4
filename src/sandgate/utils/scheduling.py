"""Caller-owned periodic tasks.

Nothing in sandgate starts background work on construction.  A caller that
wants periodic rescans creates a :class:`PeriodicTask`, starts it, and stops
it when done::

    task = PeriodicTask(manager.rescan, interval=300)
    await task.start()
    ...
    await task.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from sandgate.errors import SandgateError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async callable every *interval* seconds until stopped."""

    def __init__(
        self,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        name: str = "sandgate.periodic",
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            msg = "interval must be positive"
            raise ValueError(msg)
        self._func = func
        self._interval = interval
        self._name = name
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self._runs = 0
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def failures(self) -> int:
        return self._failures

    async def start(self) -> None:
        if self.running:
            logger.warning("Periodic task %s already running", self._name)
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.debug("Started periodic task %s (interval=%ss)", self._name, self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped periodic task %s after %d runs", self._name, self._runs)

    async def __aenter__(self) -> PeriodicTask:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self._func()
            except (SandgateError, OSError) as exc:
                self._failures += 1
                logger.error("Periodic task %s failed: %s", self._name, exc)
            self._runs += 1
            await asyncio.sleep(self._interval)

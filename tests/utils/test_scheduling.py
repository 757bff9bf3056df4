"""Tests for PeriodicTask."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from sandgate.errors import IsolationError
from sandgate.utils.scheduling import PeriodicTask


async def _wait_for_runs(task: PeriodicTask, runs: int) -> None:
    for _ in range(200):
        if task.runs >= runs:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {runs} runs, saw {task.runs}")


class TestPeriodicTask:
    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            PeriodicTask(AsyncMock(), interval=0)

    async def test_runs_until_stopped(self) -> None:
        func = AsyncMock()
        task = PeriodicTask(func, interval=0.01)
        await task.start()
        assert task.running

        await _wait_for_runs(task, 3)
        await task.stop()

        assert not task.running
        assert func.await_count >= 3

    async def test_context_manager(self) -> None:
        func = AsyncMock()
        async with PeriodicTask(func, interval=0.01) as task:
            await _wait_for_runs(task, 1)
        assert not task.running

    async def test_delayed_first_run(self) -> None:
        func = AsyncMock()
        task = PeriodicTask(func, interval=60, run_immediately=False)
        await task.start()
        await asyncio.sleep(0.05)
        await task.stop()
        func.assert_not_awaited()

    async def test_failures_do_not_stop_the_loop(self) -> None:
        func = AsyncMock(side_effect=IsolationError("mirror gone"))
        task = PeriodicTask(func, interval=0.01)
        await task.start()
        await _wait_for_runs(task, 2)
        await task.stop()
        assert task.failures >= 2

    async def test_stop_without_start(self) -> None:
        await PeriodicTask(AsyncMock(), interval=1).stop()

    async def test_double_start_keeps_one_loop(self) -> None:
        task = PeriodicTask(AsyncMock(), interval=60)
        await task.start()
        first = task._task
        await task.start()
        assert task._task is first
        await task.stop()

"""Unit tests for throttled_gather and BackgroundDispatcher."""

from __future__ import annotations

import asyncio

import pytest

from docingest.utils.concurrency import BackgroundDispatcher, throttled_gather


class TestThrottledGather:
    @pytest.mark.asyncio
    async def test_bounds_concurrency_and_keeps_order(self) -> None:
        running = 0
        peak = 0

        async def _work(value: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            running -= 1
            return value * 2

        results = await throttled_gather(
            [_work(i) for i in range(6)], semaphore=asyncio.Semaphore(2)
        )

        assert results == [0, 2, 4, 6, 8, 10]
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_returns_exceptions_in_place(self) -> None:
        async def _fail() -> int:
            raise ValueError("boom")

        async def _ok() -> int:
            return 1

        results = await throttled_gather([_ok(), _fail()], semaphore=asyncio.Semaphore(1))

        assert results[0] == 1
        assert isinstance(results[1], ValueError)


class TestBackgroundDispatcher:
    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_scheduled_while_draining(self) -> None:
        dispatcher = BackgroundDispatcher()
        finished: list[str] = []

        async def _second() -> None:
            finished.append("second")

        async def _first() -> None:
            await asyncio.sleep(0)
            dispatcher.dispatch(_second, name="second")
            finished.append("first")

        dispatcher.dispatch(_first, name="first")
        await dispatcher.drain()

        assert finished == ["first", "second"]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_failed_task_does_not_break_drain(self) -> None:
        dispatcher = BackgroundDispatcher()

        async def _fail() -> None:
            raise RuntimeError("background failure")

        dispatcher.dispatch(_fail, name="fail")
        await dispatcher.drain()
        assert dispatcher.pending == 0

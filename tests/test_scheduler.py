# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the virtual and asyncio schedulers.
"""

import asyncio

import pytest

from teleprompt.scheduler import AsyncioScheduler, VirtualScheduler


class TestVirtualScheduler:
    """Tests for the manual-clock scheduler."""

    def test_nothing_runs_until_advanced(self) -> None:
        scheduler = VirtualScheduler()
        calls: list[str] = []
        scheduler.call_later(1.0, lambda: calls.append("once"))
        assert calls == []
        assert scheduler.pending == 1

    def test_callbacks_run_in_due_order(self) -> None:
        scheduler = VirtualScheduler()
        calls: list[tuple[str, float]] = []
        scheduler.call_later(2.0, lambda: calls.append(("b", scheduler.time())))
        scheduler.call_later(1.0, lambda: calls.append(("a", scheduler.time())))
        scheduler.advance(5.0)
        assert calls == [("a", 1.0), ("b", 2.0)]
        assert scheduler.time() == 5.0

    def test_repeating_task(self) -> None:
        scheduler = VirtualScheduler()
        times: list[float] = []
        scheduler.call_every(0.5, lambda: times.append(scheduler.time()))
        scheduler.advance(2.0)
        assert times == [0.5, 1.0, 1.5, 2.0]

    def test_cancel(self) -> None:
        scheduler = VirtualScheduler()
        calls: list[int] = []
        once = scheduler.call_later(1.0, lambda: calls.append(1))
        repeat = scheduler.call_every(1.0, lambda: calls.append(2))
        scheduler.advance(1.0)
        assert calls == [1, 2]

        once.cancel()
        repeat.cancel()
        assert repeat.cancelled
        scheduler.advance(5.0)
        assert calls == [1, 2]
        assert scheduler.pending == 0

    def test_callback_can_cancel_itself(self) -> None:
        scheduler = VirtualScheduler()
        calls: list[float] = []

        def tick() -> None:
            calls.append(scheduler.time())
            if len(calls) == 2:
                task.cancel()

        task = scheduler.call_every(1.0, tick)
        scheduler.advance(10.0)
        assert calls == [1.0, 2.0]

    def test_callback_can_schedule(self) -> None:
        scheduler = VirtualScheduler()
        calls: list[float] = []
        scheduler.call_later(1.0, lambda: scheduler.call_later(
            1.0, lambda: calls.append(scheduler.time())))
        scheduler.advance(3.0)
        assert calls == [2.0]

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            VirtualScheduler().call_every(0, lambda: None)


class TestAsyncioScheduler:
    """Tests for the event loop scheduler."""

    @pytest.mark.asyncio
    async def test_call_later(self) -> None:
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()
        scheduler.call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_call_every_until_cancelled(self) -> None:
        scheduler = AsyncioScheduler()
        calls: list[float] = []
        done = asyncio.Event()

        def tick() -> None:
            calls.append(scheduler.time())
            if len(calls) == 3:
                task.cancel()
                done.set()

        task = scheduler.call_every(0.01, tick)
        await asyncio.wait_for(done.wait(), timeout=1.0)
        await asyncio.sleep(0.05)
        assert len(calls) == 3
        assert task.cancelled

    @pytest.mark.asyncio
    async def test_cancelled_one_shot_never_runs(self) -> None:
        scheduler = AsyncioScheduler()
        calls: list[int] = []
        task = scheduler.call_later(0.01, lambda: calls.append(1))
        task.cancel()
        await asyncio.sleep(0.05)
        assert calls == []
        assert task.cancelled

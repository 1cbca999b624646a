# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Cancellable one-shot and repeating timers.

Sessions arm all of their timers through a Scheduler so that teardown can
cancel every one of them in one place. AsyncioScheduler runs on the event
loop; VirtualScheduler runs on a manual clock for simulations and tests.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Handle for a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the callback from running again. Safe to call repeatedly."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""


class Scheduler(ABC):
    """Creates cancellable timers and exposes the clock they run on."""

    @abstractmethod
    def time(self) -> float:
        """Current time in seconds on this scheduler's clock."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run callback once after delay seconds."""

    @abstractmethod
    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run callback every interval seconds, first after one interval."""


class _AsyncioOneShot(ScheduledTask):
    """One-shot task backed by loop.call_later."""

    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float,
                 callback: Callable[[], None]) -> None:
        self._handle: asyncio.TimerHandle = loop.call_later(delay, callback)

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class _AsyncioRepeating(ScheduledTask):
    """Repeating task that re-arms itself before each run."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float,
                 callback: Callable[[], None]) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._handle: asyncio.TimerHandle | None = None
        self._arm()

    def _arm(self) -> None:
        self._handle = self._loop.call_later(self._interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler running on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop: asyncio.AbstractEventLoop | None = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The event loop timers are armed on (the running loop by default)."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        return _AsyncioOneShot(self.loop, delay, callback)

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        return _AsyncioRepeating(self.loop, interval, callback)


class _VirtualTask(ScheduledTask):
    """Task queued on a VirtualScheduler."""

    def __init__(self, callback: Callable[[], None], interval: float | None) -> None:
        self.callback = callback
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler(Scheduler):
    """
    Scheduler driven by a manual clock.

    Nothing runs until advance() is called; callbacks then run in due-time
    order with the clock set to each callback's due time. Also usable as the
    clock for a controller (pass scheduler.time).
    """

    def __init__(self, start_time: float = 0.0) -> None:
        self.now: float = start_time
        self._queue: list[tuple[float, int, _VirtualTask]] = []
        self._counter = itertools.count()

    def time(self) -> float:
        return self.now

    def _push(self, due: float, task: _VirtualTask) -> None:
        heapq.heappush(self._queue, (due, next(self._counter), task))

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _VirtualTask(callback, None)
        self._push(self.now + delay, task)
        return task

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        task = _VirtualTask(callback, interval)
        self._push(self.now + interval, task)
        return task

    @property
    def pending(self) -> int:
        """Number of tasks still waiting to run."""
        return sum(1 for _, _, task in self._queue if not task.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due."""
        target: float = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self.now = due
            if task.interval is not None:
                self._push(due + task.interval, task)
            task.callback()
        self.now = target

"""Timers for poll tickers and deadline watchdogs.

Job managers never call ``asyncio`` timing primitives directly; they ask a
:class:`Scheduler` for one-shot and repeating timers. Production code uses
:class:`AsyncioScheduler`; tests use :class:`VirtualScheduler` and move time
forward explicitly instead of sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Stop the timer; a callback already running is not interrupted."""

    @property
    @abstractmethod
    def cancelled(self) -> bool: ...


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        """Monotonic seconds."""

    @abstractmethod
    def utcnow(self) -> datetime: ...

    @abstractmethod
    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        """Run ``callback`` once, ``delay`` seconds from now."""

    @abstractmethod
    def call_every(self, interval: float, callback: AsyncCallback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds, first after one interval."""


def _log_task_failure(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Scheduled callback failed", exc_info=exc)


class _AsyncioTimer(TimerHandle):
    def __init__(
        self,
        scheduler: "AsyncioScheduler",
        delay: float,
        callback: AsyncCallback,
        repeat: Optional[float],
    ) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._handle = scheduler.loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        if self._repeat is not None:
            self._handle = self._scheduler.loop.call_later(self._repeat, self._fire)
        self._scheduler.spawn(self._callback())

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Real timers on the running event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic()

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        return _AsyncioTimer(self, delay, callback, repeat=None)

    def call_every(self, interval: float, callback: AsyncCallback) -> TimerHandle:
        return _AsyncioTimer(self, interval, callback, repeat=interval)

    def spawn(self, coro: Awaitable[None]) -> "asyncio.Task[None]":
        task = self.loop.create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        return task


class _VirtualTimer(TimerHandle):
    def __init__(self, when: float, callback: AsyncCallback, repeat: Optional[float]) -> None:
        self.when = when
        self.callback = callback
        self.repeat = repeat
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler(Scheduler):
    """Deterministic clock driven by :meth:`advance`.

    Timers due at the same instant fire in the order they were armed. After
    each firing the scheduler yields to the event loop so callbacks can run up
    to their next real suspension point before time moves on.
    """

    def __init__(
        self,
        *,
        start: float = 0.0,
        epoch: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        settle_rounds: int = 50,
    ) -> None:
        self._now = start
        self._epoch = epoch
        self._settle_rounds = settle_rounds
        self._queue: list[tuple[float, int, _VirtualTimer]] = []
        self._sequence = itertools.count()
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> float:
        return self._now

    def utcnow(self) -> datetime:
        return self._epoch + timedelta(seconds=self._now)

    def call_later(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        return self._push(_VirtualTimer(self._now + delay, callback, repeat=None))

    def call_every(self, interval: float, callback: AsyncCallback) -> TimerHandle:
        return self._push(_VirtualTimer(self._now + interval, callback, repeat=interval))

    @property
    def active_timers(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            if timer.repeat is not None:
                timer.when = when + timer.repeat
                self._push(timer)
            task = asyncio.get_running_loop().create_task(timer.callback())  # type: ignore[arg-type]
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(_log_task_failure)
            await self.settle()
        self._now = target
        await self.settle()

    async def settle(self) -> None:
        """Yield to the loop until spawned callbacks finish or stop making progress."""

        for _ in range(self._settle_rounds):
            if not self._tasks:
                return
            await asyncio.sleep(0)

    def _push(self, timer: _VirtualTimer) -> _VirtualTimer:
        heapq.heappush(self._queue, (timer.when, next(self._sequence), timer))
        return timer

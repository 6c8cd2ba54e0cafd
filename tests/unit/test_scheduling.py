"""Tests for the virtual and asyncio schedulers."""

import asyncio

import pytest

from services.workflow.app.scheduling import AsyncioScheduler, VirtualScheduler


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def test_virtual_timers_fire_in_time_order() -> None:
    scheduler = VirtualScheduler()
    fired: list[tuple[str, float]] = []

    def record(label: str):
        async def callback() -> None:
            fired.append((label, scheduler.now()))

        return callback

    scheduler.call_later(5, record("late"))
    scheduler.call_later(2, record("early"))
    scheduler.call_every(2, record("tick"))

    await scheduler.advance(5)
    assert fired == [("early", 2), ("tick", 2), ("tick", 4), ("late", 5)]
    assert scheduler.now() == 5


async def test_cancelled_timer_never_fires() -> None:
    scheduler = VirtualScheduler()
    fired: list[float] = []

    async def callback() -> None:
        fired.append(scheduler.now())

    handle = scheduler.call_every(1, callback)
    await scheduler.advance(2)
    handle.cancel()
    await scheduler.advance(10)
    assert fired == [1, 2]
    assert handle.cancelled
    assert scheduler.active_timers == 0


async def test_utcnow_follows_virtual_time() -> None:
    scheduler = VirtualScheduler()
    start = scheduler.utcnow()
    await scheduler.advance(90)
    assert (scheduler.utcnow() - start).total_seconds() == 90


async def test_asyncio_scheduler_runs_callbacks() -> None:
    scheduler = AsyncioScheduler()
    done = asyncio.Event()
    ticks: list[int] = []

    async def tick() -> None:
        ticks.append(1)
        if len(ticks) == 2:
            done.set()

    handle = scheduler.call_every(0.01, tick)
    await asyncio.wait_for(done.wait(), timeout=2)
    handle.cancel()
    assert len(ticks) >= 2

import asyncio

import pytest

from intake_agent.intake.timers import RepromptTimerSet


@pytest.mark.asyncio
async def test_scheduled_callback_fires():
    timers = RepromptTimerSet()
    fired = []

    timers.schedule(5, lambda: fired.append("soft"))
    assert timers.pending == 1

    await asyncio.sleep(0.03)

    assert fired == ["soft"]
    assert timers.pending == 0


@pytest.mark.asyncio
async def test_cancel_all_bumps_generation():
    timers = RepromptTimerSet()
    fired = []
    timers.schedule(5, lambda: fired.append("soft"))
    timers.schedule(10, lambda: fired.append("hard"))

    timers.cancel_all()
    await asyncio.sleep(0.03)

    assert fired == []
    assert timers.pending == 0
    assert timers.generation == 1


@pytest.mark.asyncio
async def test_callback_scheduled_after_cancel_still_fires():
    timers = RepromptTimerSet()
    fired = []
    timers.schedule(5, lambda: fired.append("old"))
    timers.cancel_all()

    timers.schedule(5, lambda: fired.append("new"))
    await asyncio.sleep(0.03)

    assert fired == ["new"]


@pytest.mark.asyncio
async def test_close_makes_schedule_a_noop():
    timers = RepromptTimerSet()
    fired = []
    timers.schedule(5, lambda: fired.append("soft"))

    timers.close()
    handle = timers.schedule(5, lambda: fired.append("late"))
    await asyncio.sleep(0.03)

    assert handle is None
    assert fired == []
    assert timers.closed


@pytest.mark.asyncio
async def test_callback_error_is_contained():
    timers = RepromptTimerSet()
    fired = []

    def broken():
        raise RuntimeError("boom")

    timers.schedule(1, broken)
    timers.schedule(5, lambda: fired.append("after"))
    await asyncio.sleep(0.03)

    assert fired == ["after"]

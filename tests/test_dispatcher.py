import asyncio
from unittest.mock import AsyncMock

import pytest

from intake_agent.intake.dispatcher import PromptDispatcher


def make_dispatcher(clock=None, inject=None, when_quiet=None, **kwargs):
    spoken = []

    async def record(text):
        spoken.append(text)

    dispatcher = PromptDispatcher(
        inject or record,
        when_quiet or AsyncMock(return_value=True),
        clock=clock or (lambda: 0.0),
        **kwargs,
    )
    return dispatcher, spoken


@pytest.mark.asyncio
async def test_lines_are_spoken_in_order():
    dispatcher, spoken = make_dispatcher()

    dispatcher.say("What is your full name?")
    dispatcher.say("Please say your first and last name clearly.")
    dispatcher.say("What is your email address?")
    await dispatcher.drain()

    assert spoken == [
        "What is your full name?",
        "Please say your first and last name clearly.",
        "What is your email address?",
    ]
    assert dispatcher.spoken == 3


@pytest.mark.asyncio
async def test_slow_line_does_not_overlap_the_next():
    events = []

    async def slow_inject(text):
        events.append(f"start {text}")
        await asyncio.sleep(0.01)
        events.append(f"end {text}")

    dispatcher, _ = make_dispatcher(inject=slow_inject)

    dispatcher.say("first")
    dispatcher.say("second")
    await dispatcher.drain()

    assert events == ["start first", "end first", "start second", "end second"]


@pytest.mark.asyncio
async def test_waits_for_quiet_before_each_line():
    when_quiet = AsyncMock(return_value=False)
    dispatcher, spoken = make_dispatcher(when_quiet=when_quiet, quiet_wait_ms=250)

    dispatcher.say("hello")
    await dispatcher.drain()

    when_quiet.assert_awaited_once_with(250)
    # A timed-out wait still speaks the line
    assert spoken == ["hello"]


@pytest.mark.asyncio
async def test_duplicate_line_within_window_dropped(clock):
    dispatcher, spoken = make_dispatcher(clock=clock, dedupe_ms=1200)

    dispatcher.say("Is everything correct?")
    clock.advance(500)
    dispatcher.say("Is everything correct?")
    await dispatcher.drain()
    assert spoken == ["Is everything correct?"]

    clock.advance(1500)
    dispatcher.say("Is everything correct?")
    await dispatcher.drain()
    assert spoken == ["Is everything correct?", "Is everything correct?"]


@pytest.mark.asyncio
async def test_duplicate_dropped_with_other_line_in_between(clock):
    dispatcher, spoken = make_dispatcher(clock=clock, dedupe_ms=1200)

    dispatcher.say("What is your email address?")
    clock.advance(200)
    dispatcher.say("Please say ten digits for your phone number.")
    clock.advance(200)
    dispatcher.say("What is your email address?")
    await dispatcher.drain()

    assert spoken == ["What is your email address?", "Please say ten digits for your phone number."]

    clock.advance(900)
    dispatcher.say("What is your email address?")
    dispatcher.say("Please say ten digits for your phone number.")
    await dispatcher.drain()

    # the email line was requested 1300ms ago, the phone line only 1100ms ago
    assert spoken[2:] == ["What is your email address?"]


@pytest.mark.asyncio
async def test_blank_line_ignored():
    dispatcher, spoken = make_dispatcher()

    assert dispatcher.say("   ") is None
    await dispatcher.drain()

    assert spoken == []


@pytest.mark.asyncio
async def test_inject_error_does_not_stop_later_lines():
    spoken = []

    async def flaky(text):
        if text == "first":
            raise ConnectionError("agent gone")
        spoken.append(text)

    dispatcher, _ = make_dispatcher(inject=flaky)

    dispatcher.say("first")
    dispatcher.say("second")
    await dispatcher.drain()

    assert spoken == ["second"]
    assert dispatcher.spoken == 1


@pytest.mark.asyncio
async def test_close_cancels_queued_lines():
    gate = asyncio.Event()

    async def blocked(timeout_ms):
        await gate.wait()
        return True

    dispatcher, spoken = make_dispatcher(when_quiet=blocked)
    dispatcher.say("first")
    dispatcher.say("second")
    await asyncio.sleep(0)

    dispatcher.close()
    gate.set()
    await dispatcher.drain()

    assert spoken == []
    assert dispatcher.say("third") is dispatcher._tail

import pytest

from intake_agent.bot.playback import PlaybackController


@pytest.fixture
def playback(clock):
    return PlaybackController(barge_mute_ms=400, clear_throttle_ms=600, playback_mask_ms=150, clock=clock)


def test_agent_audio_admitted_by_default(playback):
    assert playback.admit_agent_audio(b"\xff" * 160)
    assert playback.dropped_chunks == 0


def test_barge_in_opens_mute_window(playback, clock):
    assert playback.on_user_started_speaking() is True
    assert playback.muted

    clock.advance(100)
    assert playback.admit_agent_audio(b"\xff" * 160) is False
    assert playback.dropped_chunks == 1

    clock.advance(301)
    assert not playback.muted
    assert playback.admit_agent_audio(b"\xff" * 160) is True


def test_clear_requests_throttled(playback, clock):
    assert playback.on_user_started_speaking() is True

    clock.advance(200)
    assert playback.on_user_started_speaking() is False

    clock.advance(500)
    assert playback.on_user_started_speaking() is True


def test_throttled_barge_in_still_extends_mute(playback, clock):
    playback.on_user_started_speaking()
    clock.advance(300)

    playback.on_user_started_speaking()
    clock.advance(300)

    assert playback.muted


def test_barge_in_disabled(clock):
    playback = PlaybackController(barge_enable=False, clock=clock)

    assert playback.on_user_started_speaking() is False
    assert playback.admit_agent_audio(b"\xff" * 160) is True


def test_is_speaking_within_playback_mask(playback, clock):
    assert not playback.is_speaking()

    playback.admit_agent_audio(b"\xff" * 160)
    assert playback.is_speaking()

    clock.advance(151)
    assert not playback.is_speaking()


def test_take_meter_resets_counts(playback):
    playback.admit_agent_audio(b"\xff" * 160)
    playback.admit_agent_audio(b"\xff" * 80)

    assert playback.take_meter() == (240, 2)
    assert playback.take_meter() == (0, 0)


@pytest.mark.asyncio
async def test_when_quiet_returns_immediately_when_silent(playback):
    assert await playback.when_quiet(500) is True


@pytest.mark.asyncio
async def test_when_quiet_times_out_while_speaking(playback):
    playback.admit_agent_audio(b"\xff" * 160)

    assert await playback.when_quiet(0) is False


@pytest.mark.asyncio
async def test_when_quiet_with_real_clock():
    playback = PlaybackController(playback_mask_ms=20)
    playback.admit_agent_audio(b"\xff" * 160)

    assert await playback.when_quiet(1000) is True

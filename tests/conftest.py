import logging

import pytest

from intake_agent.config.settings import RelaySettings


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeClock:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def clock():
    return FakeClock()


class FakeAgentClient:
    """Stands in for AgentSessionClient; records what the relay sends to the agent."""

    def __init__(self, settings, on_audio=None, on_event=None, on_close=None, connect_ok=True):
        self.settings = settings
        self.on_audio = on_audio
        self.on_event = on_event
        self.on_close = on_close
        self.connect_ok = connect_ok
        self.sent_audio = []
        self.injected = []
        self.close_calls = 0

    async def connect(self):
        return self.connect_ok

    async def send_audio(self, chunk):
        self.sent_audio.append(chunk)
        return True

    async def inject_agent_message(self, text):
        self.injected.append(text)
        return True

    async def close(self):
        self.close_calls += 1


@pytest.fixture
def agent_factory():
    """Factory for SessionRelay that keeps the agents it built in .agents"""

    def factory(settings, **callbacks):
        agent = FakeAgentClient(settings, connect_ok=factory.connect_ok, **callbacks)
        factory.agents.append(agent)
        return agent

    factory.agents = []
    factory.connect_ok = True
    return factory


@pytest.fixture
def settings():
    """Settings with timers and metering off so tests drive every step explicitly"""
    return RelaySettings(
        deepgram_api_key="test-key",
        reprompt_ms=0,
        hard_nudge_ms=0,
        audio_meter_ms=0,
        quiet_wait_ms=0,
        transfer_number="+15550001111",
    )

"""
Playback gating and barge-in for synthesized agent audio.

The controller decides whether each chunk of agent audio may reach the caller,
when the telephony leg should be told to clear its playback buffer, and whether
the channel is currently quiet enough to inject a new prompt.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Tuple

from intake_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

QUIET_POLL_MS = 50


class PlaybackController:
    """
    Per-call playback state.

    Attributes:
        barge_mute_until: Monotonic time before which agent audio is dropped
        last_clear_at: Monotonic time of the last clear request, None before the first
        last_agent_audio_at: Monotonic time of the last synthesized chunk
    """

    def __init__(
        self,
        barge_enable: bool = True,
        barge_mute_ms: int = 400,
        clear_throttle_ms: int = 600,
        playback_mask_ms: int = 150,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.barge_enable = barge_enable
        self.barge_mute_s = barge_mute_ms / 1000.0
        self.clear_throttle_s = clear_throttle_ms / 1000.0
        self.playback_mask_s = playback_mask_ms / 1000.0
        self._clock = clock

        self.barge_mute_until = 0.0
        self.last_clear_at: Optional[float] = None
        self.last_agent_audio_at: Optional[float] = None

        self.meter_bytes = 0
        self.meter_chunks = 0
        self.dropped_chunks = 0

    def on_user_started_speaking(self) -> bool:
        """
        Open the mute window after the caller starts talking.

        Returns:
            bool: True if a clear request should be sent now, False if barge-in is
                disabled or a clear was already requested within the throttle interval
        """
        if not self.barge_enable:
            return False
        now = self._clock()
        self.barge_mute_until = now + self.barge_mute_s
        if self.last_clear_at is not None and now - self.last_clear_at < self.clear_throttle_s:
            logger.debug("Clear request throttled")
            return False
        self.last_clear_at = now
        return True

    def admit_agent_audio(self, chunk: bytes) -> bool:
        """Record a synthesized chunk; return True if it may be forwarded to the caller."""
        now = self._clock()
        self.last_agent_audio_at = now
        self.meter_bytes += len(chunk)
        self.meter_chunks += 1
        if self.muted:
            self.dropped_chunks += 1
            return False
        return True

    @property
    def muted(self) -> bool:
        return self._clock() < self.barge_mute_until

    def is_speaking(self) -> bool:
        """True while the last synthesized chunk is within the playback mask."""
        if self.last_agent_audio_at is None:
            return False
        return self._clock() < self.last_agent_audio_at + self.playback_mask_s

    async def when_quiet(self, timeout_ms: int) -> bool:
        """
        Wait until the agent has stopped producing audio, for at most timeout_ms.

        Returns:
            bool: True if the channel went quiet, False if the wait timed out
        """
        deadline = self._clock() + timeout_ms / 1000.0
        while self.is_speaking():
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(QUIET_POLL_MS / 1000.0, remaining))
        return True

    def take_meter(self) -> Tuple[int, int]:
        """Return and reset the (bytes, chunks) synthesized since the last call."""
        counts = (self.meter_bytes, self.meter_chunks)
        self.meter_bytes = 0
        self.meter_chunks = 0
        return counts

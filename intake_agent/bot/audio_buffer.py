"""
Inbound audio buffering for the agent leg.

FrameBuffer regroups arbitrarily sized telephony chunks into fixed-size bursts
(frame size times burst multiplier); a partial tail always stays in the buffer
until enough bytes arrive. PrerollQueue holds whole bursts while the agent
session has not yet acknowledged its configuration, dropping the oldest burst
when full.
"""

import logging
from collections import deque
from typing import Deque, Iterator, List

from intake_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class FrameBuffer:
    """Append-only byte accumulator drained into fixed-size frames."""

    def __init__(self, frame_size: int):
        if frame_size <= 0:
            raise ValueError("frame_size must be positive")
        self.frame_size = frame_size
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, chunk: bytes) -> Iterator[bytes]:
        """
        Append a chunk and return the frames it completes.

        The chunk is buffered immediately; the returned iterator then yields every
        complete frame in receipt order. Frames not consumed stay buffered and are
        yielded by the next push.

        Args:
            chunk: Raw audio bytes of any length

        Returns:
            Iterator[bytes]: Frames of exactly frame_size bytes
        """
        if chunk:
            self._buffer.extend(chunk)
        return self._drain()

    def _drain(self) -> Iterator[bytes]:
        while len(self._buffer) >= self.frame_size:
            frame = bytes(self._buffer[: self.frame_size])
            del self._buffer[: self.frame_size]
            yield frame

    def clear(self) -> None:
        self._buffer.clear()


class PrerollQueue:
    """Bounded FIFO of frames that evicts the oldest frame on overflow."""

    def __init__(self, max_frames: int):
        if max_frames <= 0:
            raise ValueError("max_frames must be positive")
        self.max_frames = max_frames
        self._frames: Deque[bytes] = deque(maxlen=max_frames)
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, frame: bytes) -> None:
        if len(self._frames) == self.max_frames:
            self.dropped += 1
        self._frames.append(frame)

    def drain(self) -> List[bytes]:
        """Remove and return every queued frame, oldest first."""
        frames = list(self._frames)
        self._frames.clear()
        if self.dropped:
            logger.debug(f"Pre-roll dropped {self.dropped} stale frames before the agent was ready")
        return frames

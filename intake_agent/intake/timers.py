"""
Generation-tagged reprompt timers.

Each scheduled callback remembers the generation it was armed in. cancel_all()
cancels the pending handles and bumps the generation, so a callback that was
already dequeued by the event loop when the state moved on still sees a stale
generation and does nothing. close() makes every later fire a no-op for good.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from intake_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class RepromptTimerSet:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Set[asyncio.TimerHandle] = set()
        self.generation = 0
        self.closed = False

    @property
    def pending(self) -> int:
        return len(self._handles)

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Optional[asyncio.TimerHandle]:
        """
        Run callback after delay_ms unless cancelled or closed first.

        Args:
            delay_ms: Delay in milliseconds
            callback: Synchronous callable run on the event loop

        Returns:
            Optional[asyncio.TimerHandle]: The handle, or None once closed
        """
        if self.closed:
            return None
        loop = self._loop or asyncio.get_running_loop()
        generation = self.generation
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._handles.discard(handle)
            if self.closed or generation != self.generation:
                return
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in reprompt timer callback: {e}", exc_info=True)

        handle = loop.call_later(delay_ms / 1000.0, fire)
        self._handles.add(handle)
        return handle

    def cancel_all(self) -> None:
        """Cancel every pending timer and invalidate any callback already in flight."""
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        self.generation += 1

    def close(self) -> None:
        self.cancel_all()
        self.closed = True

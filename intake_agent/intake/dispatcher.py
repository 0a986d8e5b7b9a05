"""
Serialized prompt output for one call.

Every spoken line goes through a single chain of asyncio tasks, each waiting for
the previous one, so two prompts never overlap. Before a line is injected the
dispatcher waits (bounded) for the agent's own audio to stop. A line requested
again within the dedupe window of its last request is dropped, even when other
lines were queued in between.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Set

from intake_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class PromptDispatcher:
    """
    Args:
        inject: Coroutine function delivering a line to the agent leg
        when_quiet: Coroutine function waiting at most the given milliseconds for silence
        quiet_wait_ms: Upper bound of the silence wait before each line
        dedupe_ms: Window in which an identical line is dropped
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        inject: Callable[[str], Awaitable[None]],
        when_quiet: Callable[[int], Awaitable[bool]],
        quiet_wait_ms: int = 700,
        dedupe_ms: int = 1200,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._inject = inject
        self._when_quiet = when_quiet
        self.quiet_wait_ms = quiet_wait_ms
        self.dedupe_s = dedupe_ms / 1000.0
        self._clock = clock

        self._tail: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._recent: Dict[str, float] = {}
        self.closed = False
        self.spoken = 0

    def say(self, text: str) -> Optional[asyncio.Task]:
        """
        Queue a line behind any line already pending.

        Returns:
            Optional[asyncio.Task]: The task speaking the line, or the current tail
                when the line was empty, a duplicate or the dispatcher is closed
        """
        line = (text or "").strip()
        if not line or self.closed:
            return self._tail
        now = self._clock()
        self._prune(now)
        if line in self._recent:
            logger.debug(f"Dropping duplicate prompt: {line}")
            return self._tail
        self._recent[line] = now

        task = asyncio.create_task(self._speak(self._tail, line))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._tail = task
        return task

    def _prune(self, now: float) -> None:
        for line, requested_at in list(self._recent.items()):
            if now - requested_at >= self.dedupe_s:
                del self._recent[line]

    async def _speak(self, previous: Optional[asyncio.Task], line: str) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        if self.closed:
            return
        try:
            await self._when_quiet(self.quiet_wait_ms)
            if self.closed:
                return
            await self._inject(line)
            self.spoken += 1
            logger.info(f"Prompt: {line}")
        except Exception as e:
            logger.error(f"Error speaking prompt '{line}': {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait until every queued line has been spoken or dropped."""
        while self._tail is not None and not self._tail.done():
            await asyncio.wait({self._tail})

    def close(self) -> None:
        """Stop speaking; queued lines are cancelled."""
        self.closed = True
        for task in list(self._tasks):
            task.cancel()

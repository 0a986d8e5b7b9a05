"""
Call session state for the voice intake relay.

Each telephony connection gets its own CallSession object that is created by the
websocket manager and handed by reference to the relay that serves it. The
SessionRegistry only keeps process-wide counters for the health endpoint; no
per-call lookup goes through it.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class CallSession:
    """
    Identifiers and connection handles of one active call.

    Attributes:
        call_id: Twilio call identifier (callSid), known once the start event arrives
        stream_id: Twilio stream identifier (streamSid)
        telephony: The telephony leg serving this call
        agent: The agent session leg, set once it is opened
        created_at: Wall-clock creation time
        closed: Set once teardown has run
    """

    call_id: Optional[str] = None
    stream_id: Optional[str] = None
    telephony: Any = None
    agent: Any = None
    created_at: float = field(default_factory=time.time)
    closed: bool = False

    def mark_closed(self) -> bool:
        """Flag the session closed; return True only the first time."""
        if self.closed:
            return False
        self.closed = True
        return True


class SessionRegistry:
    """
    Counts call sessions for metering.

    The registry holds no per-call state; sessions are owned by their relay.
    """

    def __init__(self):
        self.active = 0
        self.total = 0

    def opened(self) -> None:
        self.active += 1
        self.total += 1

    def closed(self) -> None:
        if self.active > 0:
            self.active -= 1

    def stats(self) -> dict:
        return {"active_sessions": self.active, "total_sessions": self.total}


@dataclass
class StreamContext:
    """
    Everything the stream handlers need for one telephony connection.

    Created per WebSocket by the manager and passed to every handler; the relay is
    set by the start handler once the agent session is open.
    """

    session: CallSession
    settings: Any
    registry: SessionRegistry
    call_control: Any = None
    normalizer: Any = None
    relay: Any = None

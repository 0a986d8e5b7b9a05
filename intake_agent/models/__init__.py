"""
Models module for data structures and per-call state.

Key components:
- message_schemas: Pydantic models for the Twilio Media Streams events and
  commands and for the Deepgram Voice Agent messages (Settings, KeepAlive,
  InjectAgentMessage and inbound events).
- intake: The intake field enumeration, dialog states and the FieldRecord.
- session: CallSession, the per-connection StreamContext and the process-wide
  SessionRegistry counters.

Usage examples:
```python
from intake_agent.models.message_schemas import StartMessage, TwilioMediaCommand

start = StartMessage(**{
    "event": "start",
    "streamSid": "MZ123",
    "start": {"streamSid": "MZ123", "callSid": "CA123", "tracks": ["inbound"]},
})
command = TwilioMediaCommand.from_audio(start.start.streamSid, mulaw_bytes)
await websocket.send_text(command.model_dump_json())
```
"""

from intake_agent.models.intake import DialogState, FieldRecord, IntakeField
from intake_agent.models.message_schemas import (
    AgentEvent,
    ConnectedMessage,
    InjectAgentMessage,
    KeepAliveMessage,
    MarkMessage,
    MediaMessage,
    SettingsMessage,
    StartMessage,
    StopMessage,
    TwilioClearCommand,
    TwilioMarkCommand,
    TwilioMediaCommand,
)
from intake_agent.models.session import CallSession, SessionRegistry, StreamContext

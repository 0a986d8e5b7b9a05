"""
Handlers module for Twilio media stream events.

Every handler takes the parsed event dict, the telephony WebSocket and the
per-connection StreamContext.

Key components:
- session_handlers: connected, start and stop. start opens the session relay and
  the agent session for the call; stop tears the call down.
- stream_handlers: media (caller audio, the hot path) and mark (playback
  progress acknowledgements).

Usage examples:
```python
from intake_agent.handlers import session_handlers, stream_handlers
from intake_agent.models.session import CallSession, SessionRegistry, StreamContext

context = StreamContext(session=CallSession(), settings=settings, registry=SessionRegistry())

async for message_text in websocket.iter_text():
    message = json.loads(message_text)
    if message["event"] == "start":
        await session_handlers.handle_start(message, websocket, context)
    elif message["event"] == "media":
        await stream_handlers.handle_media(message, websocket, context)
    elif message["event"] == "stop":
        await session_handlers.handle_stop(message, websocket, context)
        break
```
"""

# Handlers module initialization

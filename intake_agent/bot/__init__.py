"""
Bot module: the per-call relay between a Twilio media stream and a Deepgram
Voice Agent session.

Key components:
- AgentSessionClient: WebSocket client for one agent session. Sends Settings on
  open, KeepAlive on an interval, and hands binary audio and JSON events to the
  relay. No reconnection; a lost agent session ends the call.
- TwilioMediaLeg: Writes media, mark and clear commands to the Twilio stream.
- FrameBuffer / PrerollQueue: Regroup caller audio into fixed-size bursts and hold
  them, dropping the oldest, until the agent is ready.
- PlaybackController: Barge-in mute window, throttled clear requests and the
  "is the agent still talking" check used before prompts.
- SessionRelay / open_session: Owns all of the above for one call, plus the intake
  controller and shadow extractor, and tears everything down exactly once.

Usage examples:
```python
from intake_agent.bot import TwilioMediaLeg, open_session
from intake_agent.config.settings import RelaySettings
from intake_agent.models.session import CallSession

async def on_stream_start(websocket, stream_sid, call_sid):
    session = CallSession(call_id=call_sid, stream_id=stream_sid)
    telephony = TwilioMediaLeg(websocket, stream_sid=stream_sid)
    relay = await open_session(session, telephony, RelaySettings.from_env())
    if relay is None:
        return

    # Caller audio from media events
    await relay.on_telephony_audio(mulaw_bytes)

    # Stop event
    await relay.close("stop event")
```
"""

from intake_agent.bot.agent_client import AgentSessionClient
from intake_agent.bot.audio_buffer import FrameBuffer, PrerollQueue
from intake_agent.bot.playback import PlaybackController
from intake_agent.bot.session_relay import SessionRelay, open_session
from intake_agent.bot.telephony import TwilioMediaLeg

__all__ = [
    "AgentSessionClient",
    "FrameBuffer",
    "PlaybackController",
    "PrerollQueue",
    "SessionRelay",
    "TwilioMediaLeg",
    "open_session",
]

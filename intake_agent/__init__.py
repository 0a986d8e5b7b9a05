"""
Voice Intake Agent - Twilio media streams to a Deepgram Voice Agent

This application answers phone calls for a personal-injury firm, relays the call
audio to a hosted voice agent and runs a deterministic intake dialog next to it,
so that the same questions are asked in the same order on every call regardless
of what the conversational model decides to say.

Architecture Overview:
- FastAPI server exposing the Twilio voice webhook and the media stream WebSocket
- One session relay per call, wiring the telephony leg to one agent session
- Pre-roll buffering until the agent acknowledges its settings, barge-in muting
  and clear requests while the caller talks over the agent
- A shadow extractor filling a best-effort field record from every caller line
- An intake state machine asking client type, name, phone, email, what happened,
  when and where, reading everything back and transferring the call

Key Components:
- bot: Agent session client, Twilio media leg, audio buffering, playback gating
  and the per-call session relay
- intake: Field extractors, the dialog state machine, reprompt timers, the prompt
  dispatcher, shadow extraction and the intake controller
- config: Constants, logging setup and environment-driven settings
- handlers: Handlers for the Twilio media stream events
- models: Pydantic message schemas, the intake field record and call sessions
- services: Twilio call control and post-call normalization
- websocket_manager: Accepts media stream connections and routes their events

Getting Started:
1. Set up environment variables:
   - DEEPGRAM_API_KEY: Your Deepgram API key
   - TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN: Credentials for call transfer
   - TRANSFER_NUMBER: Where finished intakes are transferred
   - AUDIO_STREAM_DOMAIN: Public host name Twilio should stream to
   - PORT / HOST / LOG_LEVEL: Server options

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the Twilio phone number's voice webhook at:
   - POST https://your-server/twilio/voice
"""

"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names and audio defaults, and making it
easier to keep naming consistent between the telephony leg and the agent leg.
"""

# Logger name used throughout the application
LOGGER_NAME = "intake_agent"

# Default Deepgram Voice Agent endpoint
DEFAULT_AGENT_URL = "wss://agent.deepgram.com/v1/agent/converse"

# Twilio media streams carry 20ms frames of 8kHz mu-law
TWILIO_FRAME_BYTES = 160

# Audio encodings declared in the agent Settings message
AUDIO_ENCODING_MULAW = "mulaw"
AUDIO_ENCODING_LINEAR16 = "linear16"

# Twilio media stream events (telephony leg)
TWILIO_EVENT_CONNECTED = "connected"
TWILIO_EVENT_START = "start"
TWILIO_EVENT_MEDIA = "media"
TWILIO_EVENT_MARK = "mark"
TWILIO_EVENT_STOP = "stop"
TWILIO_INBOUND_TRACK = "inbound"

# Agent session events we receive
AGENT_EVT_WELCOME = "Welcome"
AGENT_EVT_SETTINGS_APPLIED = "SettingsApplied"
AGENT_EVT_USER_STARTED_SPEAKING = "UserStartedSpeaking"
AGENT_EVT_AGENT_AUDIO_DONE = "AgentAudioDone"
AGENT_EVT_WARNING = "AgentWarning"
AGENT_EVT_AGENT_ERROR = "AgentError"
AGENT_EVT_ERROR = "Error"

# Upstream transcript sources double-emit across these, so all of them are consumed
AGENT_TRANSCRIPT_EVENTS = frozenset(
    {"ConversationText", "History", "UserTranscript", "UserResponse", "Transcript"}
)

# Speaker role attached to caller utterances
ROLE_USER = "user"

# Spellings accepted for boolean environment variables
TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
FALSE_STRINGS = frozenset({"0", "false", "no", "off"})

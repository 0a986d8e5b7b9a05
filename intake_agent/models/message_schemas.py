"""
Pydantic models for the Twilio Media Streams and Deepgram Voice Agent message schemas.

This module defines structured data models for the incoming and outgoing messages
on both legs of the relay, providing type validation and documentation:
- Telephony leg: Twilio sends connected/start/media/mark/stop events and accepts
  media/mark/clear commands for the same stream.
- Agent leg: we send a one-time Settings message, periodic KeepAlive messages and
  InjectAgentMessage lines; the agent answers with JSON events and binary audio.
"""

import base64
import binascii
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intake_agent.config.constants import TWILIO_INBOUND_TRACK
from intake_agent.config.settings import AudioProfile, RelaySettings


# Telephony leg: inbound events
class TwilioMessage(BaseModel):
    """Base model for all Twilio media stream events."""

    model_config = ConfigDict(extra="allow")

    event: str = Field(..., description="Event type identifier")
    sequenceNumber: Optional[str] = Field(None, description="Per-stream message counter")
    streamSid: Optional[str] = Field(None, description="Stream identifier")


class ConnectedMessage(TwilioMessage):
    """First message on a new media stream websocket."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class MediaFormat(BaseModel):
    encoding: str = "audio/x-mulaw"
    sampleRate: int = 8000
    channels: int = 1


class StartMetadata(BaseModel):
    """Stream metadata carried by the start event."""

    model_config = ConfigDict(extra="allow")

    streamSid: str = Field(..., description="Stream identifier")
    callSid: Optional[str] = Field(None, description="Call identifier")
    accountSid: Optional[str] = None
    tracks: List[str] = Field(default_factory=lambda: [TWILIO_INBOUND_TRACK])
    mediaFormat: Optional[MediaFormat] = None
    customParameters: dict = Field(default_factory=dict)

    @field_validator("streamSid")
    def validate_stream_sid(cls, v):
        """Validate that the stream identifier is not empty."""
        if not v.strip():
            raise ValueError("streamSid cannot be empty")
        return v


class StartMessage(TwilioMessage):
    """Model for the start event announcing stream and call identifiers."""

    event: Literal["start"]
    start: StartMetadata


class MediaPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    payload: str = Field(..., description="Base64 encoded audio")
    track: Optional[str] = Field(None, description="inbound or outbound")
    chunk: Optional[str] = None
    timestamp: Optional[str] = None

    def decode(self) -> bytes:
        """Decode the base64 payload, raising ValueError on malformed input."""
        try:
            return base64.b64decode(self.payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 media payload: {e}") from e


class MediaMessage(TwilioMessage):
    """Model for a media event carrying one chunk of caller audio."""

    event: Literal["media"]
    media: MediaPayload


class MarkName(BaseModel):
    name: str


class MarkMessage(TwilioMessage):
    """Model for a mark event echoed back once queued audio has played."""

    event: Literal["mark"]
    mark: MarkName


class StopMessage(TwilioMessage):
    """Model for the stop event ending the stream."""

    event: Literal["stop"]
    stop: Optional[dict] = None


# Telephony leg: outbound commands
class OutboundMedia(BaseModel):
    payload: str


class TwilioMediaCommand(BaseModel):
    """Send one chunk of synthesized audio to the caller."""

    event: Literal["media"] = "media"
    streamSid: str
    media: OutboundMedia

    @classmethod
    def from_audio(cls, stream_sid: str, audio: bytes) -> "TwilioMediaCommand":
        return cls(
            streamSid=stream_sid,
            media=OutboundMedia(payload=base64.b64encode(audio).decode("ascii")),
        )


class TwilioMarkCommand(BaseModel):
    """Correlation marker sent after each outbound chunk."""

    event: Literal["mark"] = "mark"
    streamSid: str
    mark: MarkName


class TwilioClearCommand(BaseModel):
    """Ask Twilio to drop any audio it has buffered for playback."""

    event: Literal["clear"] = "clear"
    streamSid: str


# Agent leg: outbound messages
class AudioInput(BaseModel):
    encoding: str
    sample_rate: int


class AudioOutput(BaseModel):
    encoding: str
    sample_rate: int
    container: str = "none"


class AudioConfig(BaseModel):
    input: AudioInput
    output: AudioOutput


class Provider(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    model: str


class ListenConfig(BaseModel):
    provider: Provider


class ThinkConfig(BaseModel):
    provider: Provider
    prompt: str


class SpeakConfig(BaseModel):
    provider: Provider


class AgentConfig(BaseModel):
    language: str = "en"
    greeting: str
    listen: ListenConfig
    think: ThinkConfig
    speak: SpeakConfig


class SettingsMessage(BaseModel):
    """One-time session configuration sent as soon as the agent leg opens."""

    type: Literal["Settings"] = "Settings"
    audio: AudioConfig
    agent: AgentConfig

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "SettingsMessage":
        """
        Build the configuration message for a call.

        Args:
            settings: Relay settings carrying the audio profile, prompt, greeting and models

        Returns:
            SettingsMessage: The message to send before any audio
        """
        profile: AudioProfile = settings.audio
        return cls(
            audio=AudioConfig(
                input=AudioInput(encoding=profile.encoding, sample_rate=profile.sample_rate),
                output=AudioOutput(encoding=profile.encoding, sample_rate=profile.sample_rate),
            ),
            agent=AgentConfig(
                greeting=settings.greeting,
                listen=ListenConfig(
                    provider=Provider(type="deepgram", model=settings.stt_model, smart_format=True)
                ),
                think=ThinkConfig(
                    provider=Provider(
                        type="open_ai",
                        model=settings.llm_model,
                        temperature=settings.llm_temperature,
                    ),
                    prompt=settings.prompt,
                ),
                speak=SpeakConfig(provider=Provider(type="deepgram", model=settings.tts_voice)),
            ),
        )


class KeepAliveMessage(BaseModel):
    type: Literal["KeepAlive"] = "KeepAlive"


class InjectAgentMessage(BaseModel):
    """Ask the agent to speak a line verbatim."""

    type: Literal["InjectAgentMessage"] = "InjectAgentMessage"
    message: str

    @field_validator("message")
    def validate_message(cls, v):
        """Validate that the injected line is not empty."""
        if not v.strip():
            raise ValueError("Injected message cannot be empty")
        return v.strip()


# Agent leg: inbound events
class AgentEvent(BaseModel):
    """Any JSON event from the agent; only the type is required."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    role: Optional[str] = None
    speaker: Optional[str] = None
    content: Optional[Any] = None
    text: Optional[Any] = None
    transcript: Optional[Any] = None

    @property
    def speaker_role(self) -> str:
        return (self.role or self.speaker or "").lower()

    @property
    def utterance(self) -> str:
        for value in (self.content, self.text, self.transcript):
            if value:
                return str(value).strip()
        return ""

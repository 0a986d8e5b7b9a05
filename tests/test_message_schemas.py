import base64
import json
import unittest

from pydantic import ValidationError

from intake_agent.config.settings import RelaySettings
from intake_agent.models.message_schemas import (
    AgentEvent,
    InjectAgentMessage,
    KeepAliveMessage,
    MediaMessage,
    MediaPayload,
    SettingsMessage,
    StartMessage,
    StopMessage,
    TwilioClearCommand,
    TwilioMediaCommand,
)


class TestTwilioMessages(unittest.TestCase):
    def test_start_message(self):
        message = StartMessage(
            event="start",
            sequenceNumber="1",
            streamSid="MZ123",
            start={
                "accountSid": "AC123",
                "streamSid": "MZ123",
                "callSid": "CA123",
                "tracks": ["inbound"],
                "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
            },
        )
        self.assertEqual(message.start.callSid, "CA123")
        self.assertEqual(message.start.mediaFormat.sampleRate, 8000)

    def test_start_message_defaults_to_inbound_track(self):
        message = StartMessage(event="start", start={"streamSid": "MZ123"})
        self.assertEqual(message.start.tracks, ["inbound"])

    def test_start_message_requires_stream_sid(self):
        with self.assertRaises(ValidationError):
            StartMessage(event="start", start={"streamSid": ""})

    def test_wrong_event_rejected(self):
        with self.assertRaises(ValidationError):
            StopMessage(event="start")

    def test_media_payload_decode(self):
        payload = MediaPayload(payload=base64.b64encode(b"\x00\xff").decode(), track="inbound")
        self.assertEqual(payload.decode(), b"\x00\xff")

    def test_media_payload_invalid_base64(self):
        with self.assertRaises(ValueError):
            MediaPayload(payload="!!!").decode()

    def test_media_message_keeps_extra_fields(self):
        message = MediaMessage(event="media", media={"payload": "AA=="}, extra="x")
        self.assertEqual(message.model_dump()["extra"], "x")

    def test_media_command(self):
        command = TwilioMediaCommand.from_audio("MZ123", b"\x01\x02")
        self.assertEqual(
            json.loads(command.model_dump_json()),
            {"event": "media", "streamSid": "MZ123", "media": {"payload": "AQI="}},
        )

    def test_clear_command(self):
        self.assertEqual(TwilioClearCommand(streamSid="MZ123").model_dump(), {"event": "clear", "streamSid": "MZ123"})


class TestAgentMessages(unittest.TestCase):
    def test_settings_message(self):
        settings = RelaySettings(stt_model="nova-3", tts_voice="aura-2-thalia-en", llm_model="gpt-4o-mini")

        data = SettingsMessage.from_settings(settings).model_dump(exclude_none=True)

        self.assertEqual(data["type"], "Settings")
        self.assertEqual(data["audio"]["input"], {"encoding": "mulaw", "sample_rate": 8000})
        self.assertEqual(data["audio"]["output"], {"encoding": "mulaw", "sample_rate": 8000, "container": "none"})
        self.assertEqual(data["agent"]["listen"]["provider"], {"type": "deepgram", "model": "nova-3", "smart_format": True})
        self.assertEqual(data["agent"]["think"]["provider"]["type"], "open_ai")
        self.assertEqual(data["agent"]["think"]["provider"]["temperature"], 0.15)
        self.assertEqual(data["agent"]["think"]["prompt"], settings.prompt)
        self.assertEqual(data["agent"]["speak"]["provider"]["model"], "aura-2-thalia-en")
        self.assertEqual(data["agent"]["greeting"], settings.greeting)

    def test_keepalive(self):
        self.assertEqual(KeepAliveMessage().model_dump(), {"type": "KeepAlive"})

    def test_inject_strips_text(self):
        self.assertEqual(InjectAgentMessage(message="  Hello.  ").message, "Hello.")

    def test_inject_rejects_empty(self):
        with self.assertRaises(ValidationError):
            InjectAgentMessage(message="   ")

    def test_agent_event_utterance(self):
        event = AgentEvent.model_validate({"type": "ConversationText", "role": "USER", "content": " hi "})
        self.assertEqual(event.speaker_role, "user")
        self.assertEqual(event.utterance, "hi")

    def test_agent_event_falls_back_to_other_text_fields(self):
        event = AgentEvent.model_validate({"type": "UserTranscript", "speaker": "user", "transcript": "my name"})
        self.assertEqual(event.utterance, "my name")

    def test_agent_event_keeps_unknown_fields(self):
        event = AgentEvent.model_validate({"type": "Welcome", "request_id": "abc"})
        self.assertEqual(event.model_dump()["request_id"], "abc")
        self.assertEqual(event.utterance, "")


if __name__ == "__main__":
    unittest.main()

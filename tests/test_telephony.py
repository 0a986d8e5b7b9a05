import base64
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from intake_agent.bot.telephony import TwilioMediaLeg


@pytest.fixture
def websocket():
    websocket = AsyncMock(spec=WebSocket)
    websocket.client_state = WebSocketState.CONNECTED
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


def sent(websocket):
    return [json.loads(call.args[0]) for call in websocket.send_text.call_args_list]


@pytest.mark.asyncio
async def test_send_audio_writes_media_then_mark(websocket):
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    assert await leg.send_audio(b"\xff\x7f") is True

    media, mark = sent(websocket)
    assert media == {"event": "media", "streamSid": "MZ123", "media": {"payload": base64.b64encode(b"\xff\x7f").decode()}}
    assert mark["event"] == "mark"
    assert mark["streamSid"] == "MZ123"
    assert len(mark["mark"]["name"]) == 36
    assert leg.marks_sent == 1


@pytest.mark.asyncio
async def test_each_chunk_gets_a_fresh_mark(websocket):
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    await leg.send_audio(b"\x01")
    await leg.send_audio(b"\x02")

    marks = [message["mark"]["name"] for message in sent(websocket) if message["event"] == "mark"]
    assert len(set(marks)) == 2


@pytest.mark.asyncio
async def test_send_clear(websocket):
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    assert await leg.send_clear() is True

    assert sent(websocket) == [{"event": "clear", "streamSid": "MZ123"}]


@pytest.mark.asyncio
async def test_nothing_sent_without_stream_sid(websocket):
    leg = TwilioMediaLeg(websocket)

    assert await leg.send_audio(b"\x01") is False
    assert await leg.send_clear() is False
    websocket.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_audio_ignored(websocket):
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    assert await leg.send_audio(b"") is False


@pytest.mark.asyncio
async def test_write_error_reported(websocket):
    websocket.send_text.side_effect = RuntimeError("socket closed")
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    assert await leg.send_clear() is False


@pytest.mark.asyncio
async def test_close_once(websocket):
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    await leg.close()
    await leg.close()

    websocket.close.assert_awaited_once()
    assert not leg.ready
    assert await leg.send_clear() is False


@pytest.mark.asyncio
async def test_close_skips_disconnected_socket(websocket):
    websocket.client_state = WebSocketState.DISCONNECTED
    leg = TwilioMediaLeg(websocket, stream_sid="MZ123")

    await leg.close()

    websocket.close.assert_not_awaited()

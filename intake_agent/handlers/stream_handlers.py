"""
Handles audio and playback-progress events on the Twilio media stream.

media events carry base64 mu-law caller audio and are on the hot path: they go
straight to the relay's frame buffer. mark events echo back the correlation
markers the relay attaches to each chunk of agent audio it sends.
"""

import logging
from typing import Any, Dict

from fastapi import WebSocket
from pydantic import ValidationError

from intake_agent.config.constants import LOGGER_NAME, TWILIO_INBOUND_TRACK
from intake_agent.models.message_schemas import MarkMessage, MediaPayload
from intake_agent.models.session import StreamContext

logger = logging.getLogger(LOGGER_NAME)


async def handle_media(message: Dict[str, Any], websocket: WebSocket, context: StreamContext) -> None:
    """
    Forward one chunk of caller audio to the relay.

    Chunks from tracks other than the inbound one, chunks that arrive before the
    start event and payloads that are not valid base64 are dropped.

    Args:
        message: The media event
        websocket: The telephony WebSocket
        context: Per-connection state
    """
    relay = context.relay
    if relay is None:
        logger.debug("Media received before the stream started; dropping")
        return
    try:
        media = MediaPayload(**(message.get("media") or {}))
        if media.track and media.track != TWILIO_INBOUND_TRACK:
            return
        audio = media.decode()
    except ValidationError as e:
        logger.warning(f"Invalid media message: {e}")
        return
    except ValueError as e:
        logger.warning(f"Discarding media chunk: {e}")
        return
    await relay.on_telephony_audio(audio)


async def handle_mark(message: Dict[str, Any], websocket: WebSocket, context: StreamContext) -> None:
    """Log a playback marker acknowledged by Twilio."""
    try:
        mark = MarkMessage(**message)
    except ValidationError as e:
        logger.warning(f"Invalid mark message: {e}")
        return
    logger.debug(f"Playback reached mark {mark.mark.name} on stream {context.session.stream_id}")

"""
Outbound side of the Twilio media stream.

Wraps the accepted FastAPI WebSocket for one call and writes the three commands
the relay needs: media (followed by a mark so playback progress is observable),
clear (drop everything queued for playback) and close.
"""

import logging
import uuid
from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.models.message_schemas import (
    MarkName,
    TwilioClearCommand,
    TwilioMarkCommand,
    TwilioMediaCommand,
)

logger = logging.getLogger(LOGGER_NAME)


class TwilioMediaLeg:
    def __init__(self, websocket: WebSocket, stream_sid: Optional[str] = None):
        self.websocket = websocket
        self.stream_sid = stream_sid
        self.closed = False
        self.marks_sent = 0

    @property
    def ready(self) -> bool:
        return self.stream_sid is not None and not self.closed

    async def _send(self, command: BaseModel) -> bool:
        if not self.ready:
            return False
        try:
            await self.websocket.send_text(command.model_dump_json())
            return True
        except Exception as e:
            logger.warning(f"Failed to write {command.event} to stream {self.stream_sid}: {e}")
            return False

    async def send_audio(self, audio: bytes) -> bool:
        """
        Queue synthesized audio for playback to the caller.

        Args:
            audio: Encoded audio in the stream's codec

        Returns:
            bool: True if both the media and its mark were written
        """
        if not audio:
            return False
        if not await self._send(TwilioMediaCommand.from_audio(self.stream_sid, audio)):
            return False
        self.marks_sent += 1
        return await self._send(TwilioMarkCommand(streamSid=self.stream_sid, mark=MarkName(name=str(uuid.uuid4()))))

    async def send_clear(self) -> bool:
        """Drop any audio Twilio has buffered but not yet played."""
        sent = await self._send(TwilioClearCommand(streamSid=self.stream_sid))
        if sent:
            logger.debug(f"Clear sent to stream {self.stream_sid}")
        return sent

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            if (
                self.websocket.client_state != WebSocketState.DISCONNECTED
                and self.websocket.application_state != WebSocketState.DISCONNECTED
            ):
                await self.websocket.close()
        except Exception as e:
            logger.debug(f"Telephony socket already closed: {e}")

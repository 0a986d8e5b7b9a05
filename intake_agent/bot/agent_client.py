import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Optional, Union

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.config.settings import RelaySettings
from intake_agent.models.message_schemas import (
    AgentEvent,
    InjectAgentMessage,
    KeepAliveMessage,
    SettingsMessage,
)

logger = logging.getLogger(LOGGER_NAME)

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32
WS_PING_INTERVAL = 20
SEND_TIMEOUT = 5.0  # seconds

AudioHandler = Callable[[bytes], Awaitable[None]]
EventHandler = Callable[[AgentEvent], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]


class AgentSessionClient:
    """
    Client for one Deepgram Voice Agent session over WebSocket.

    Sends the Settings message as soon as the socket opens, keeps the session alive
    with periodic KeepAlive messages, and hands inbound binary frames (synthesized
    audio) and JSON events to the owner's callbacks. There is no reconnection: a
    lost agent session ends the call.
    """

    def __init__(
        self,
        settings: RelaySettings,
        on_audio: Optional[AudioHandler] = None,
        on_event: Optional[EventHandler] = None,
        on_close: Optional[CloseHandler] = None,
    ):
        self.settings = settings
        self.ws = None
        self._on_audio = on_audio
        self._on_event = on_event
        self._on_close = on_close
        self._recv_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._connection_active = False
        self._is_closing = False
        self._last_activity = 0.0

    @property
    def connected(self) -> bool:
        return self._connection_active

    async def connect(self) -> bool:
        """
        Open the agent session and send Settings.

        Returns:
            bool: True if the socket opened and Settings was sent, False otherwise
        """
        if self._is_closing:
            logger.warning("Cannot connect - agent client is closing")
            return False
        if not self.settings.deepgram_api_key:
            logger.error("DEEPGRAM_API_KEY is not configured; cannot open agent session")
            return False

        url = self.settings.agent_url
        headers = {"Authorization": f"Token {self.settings.deepgram_api_key}"}
        try:
            logger.info(f"Connecting to agent at {url}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=self.settings.connect_timeout_s,
            )
            logger.debug(f"Agent WebSocket established in {time.time() - connection_start:.2f} seconds")
        except asyncio.TimeoutError:
            logger.error(f"Timeout while connecting to agent (after {self.settings.connect_timeout_s}s)")
            return False
        except Exception as e:
            logger.error(f"Failed to connect to agent: {e}", exc_info=True)
            return False

        self._connection_active = True
        self._last_activity = time.time()
        self._recv_task = asyncio.create_task(self._recv_loop())
        self._keepalive_task = asyncio.create_task(self._keepalive())

        if not await self.send_json(SettingsMessage.from_settings(self.settings)):
            logger.error("Failed to send Settings to agent")
            await self.close()
            return False
        logger.info("Agent session opened; Settings sent")
        return True

    async def send_json(self, message: Union[BaseModel, dict]) -> bool:
        """
        Send one JSON message on the agent session.

        Returns:
            bool: True if the message was written to the socket
        """
        if not self._connection_active or self.ws is None:
            logger.debug("Cannot send to agent - connection not active")
            return False
        payload = message.model_dump(exclude_none=True) if isinstance(message, BaseModel) else message
        try:
            await asyncio.wait_for(self.ws.send(json.dumps(payload)), timeout=SEND_TIMEOUT)
            self._last_activity = time.time()
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timeout while sending {payload.get('type', 'message')} to agent")
            return False
        except ConnectionClosed as e:
            logger.warning(f"Agent connection closed while sending: {e}")
            self._connection_active = False
            return False
        except Exception as e:
            logger.error(f"Error sending message to agent: {e}", exc_info=True)
            return False

    async def send_audio(self, chunk: bytes) -> bool:
        """Send one binary audio frame to the agent."""
        if not self._connection_active or self.ws is None:
            return False
        try:
            await asyncio.wait_for(self.ws.send(chunk), timeout=SEND_TIMEOUT)
            self._last_activity = time.time()
            return True
        except asyncio.TimeoutError:
            logger.warning("Timeout while sending audio to agent")
            return False
        except ConnectionClosed as e:
            logger.warning(f"Agent connection closed while sending audio: {e}")
            self._connection_active = False
            return False
        except Exception as e:
            logger.error(f"Error sending audio to agent: {e}", exc_info=True)
            return False

    async def inject_agent_message(self, text: str) -> bool:
        """Ask the agent to speak text verbatim."""
        try:
            message = InjectAgentMessage(message=text)
        except ValidationError:
            logger.warning("Refusing to inject an empty agent message")
            return False
        return await self.send_json(message)

    async def _recv_loop(self) -> None:
        """
        Receive frames until the agent session ends.

        Binary frames go to on_audio; text frames are parsed into AgentEvent and go
        to on_event. Malformed text frames are logged and discarded.
        """
        try:
            while self._connection_active and not self._is_closing:
                message = await self.ws.recv()
                self._last_activity = time.time()

                if isinstance(message, bytes):
                    if self._on_audio:
                        await self._dispatch(self._on_audio, message)
                    continue

                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON from agent: {message[:100]}...")
                    continue
                if not isinstance(data, dict):
                    logger.warning(f"Ignoring non-object agent message: {message[:100]}")
                    continue
                try:
                    event = AgentEvent.model_validate(data)
                except ValidationError as e:
                    logger.warning(f"Invalid agent event: {e}")
                    continue
                logger.debug(f"Received agent event of type: {event.type or 'unknown'}")
                if self._on_event:
                    await self._dispatch(self._on_event, event)

        except ConnectionClosedOK:
            logger.info("Agent connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"Agent connection closed unexpectedly: {e}")
        except asyncio.CancelledError:
            logger.debug("Agent receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"Error in agent receive loop: {e}", exc_info=True)

        self._connection_active = False
        logger.info("Agent receive loop exited")
        if self._on_close and not self._is_closing:
            try:
                await self._on_close()
            except Exception as e:
                logger.error(f"Error in agent close handler: {e}", exc_info=True)

    async def _dispatch(self, handler, payload) -> None:
        try:
            await handler(payload)
        except Exception as e:
            logger.error(f"Error handling agent message: {e}", exc_info=True)

    async def _keepalive(self) -> None:
        """Send KeepAlive at a fixed interval while the session is open."""
        interval = self.settings.keepalive_interval_s
        try:
            while self._connection_active and not self._is_closing:
                await asyncio.sleep(interval)
                if not self._connection_active or self._is_closing:
                    break
                if not await self.send_json(KeepAliveMessage()):
                    logger.debug("KeepAlive not sent")
        except asyncio.CancelledError:
            logger.debug("Agent keepalive task cancelled")
            raise

    async def close(self) -> None:
        """Close the agent session and cancel its tasks; safe to call more than once."""
        if self._is_closing:
            return
        logger.info("Closing agent session")
        self._is_closing = True
        self._connection_active = False

        current = asyncio.current_task()
        for task in (self._keepalive_task, self._recv_task):
            if task and not task.done() and task is not current:
                task.cancel()

        if self.ws:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing agent WebSocket: {e}")
        logger.info("Agent session closed")

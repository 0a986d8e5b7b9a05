"""
WebSocket connection manager for Twilio media streams.

This module implements the server side of the Twilio Media Streams protocol:
- Accept the stream WebSocket opened by a <Connect><Stream> verb
- Route each JSON event (connected, start, media, mark, stop) to its handler
- Give every connection its own call session and relay, with no shared call state
- Tear the call down when the stream stops or the socket drops

The WebSocketManager is the only component that sees raw telephony frames.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from intake_agent.config.constants import (
    LOGGER_NAME,
    TWILIO_EVENT_CONNECTED,
    TWILIO_EVENT_MARK,
    TWILIO_EVENT_MEDIA,
    TWILIO_EVENT_START,
    TWILIO_EVENT_STOP,
)
from intake_agent.config.settings import RelaySettings
from intake_agent.handlers.session_handlers import handle_connected, handle_start, handle_stop
from intake_agent.handlers.stream_handlers import handle_mark, handle_media
from intake_agent.models.session import CallSession, SessionRegistry, StreamContext
from intake_agent.services.call_control import TwilioCallControl
from intake_agent.services.normalizer import IntakeNormalizer

logger = logging.getLogger(LOGGER_NAME)

# Type hint for handler functions
HandlerFunc = Callable[[Dict[str, Any], WebSocket, StreamContext], Awaitable[None]]


class WebSocketManager:
    """Accepts Twilio media stream connections and routes their events.

    Each event is routed to a handler based on its "event" field. media events
    take a fast path that skips per-message logging.
    """

    def __init__(
        self,
        settings: Optional[RelaySettings] = None,
        call_control: Optional[TwilioCallControl] = None,
        normalizer: Optional[IntakeNormalizer] = None,
    ):
        self.settings = settings or RelaySettings()
        self.call_control = call_control
        self.normalizer = normalizer
        self.registry = SessionRegistry()

        self.handlers: Dict[str, HandlerFunc] = {
            TWILIO_EVENT_CONNECTED: handle_connected,
            TWILIO_EVENT_START: handle_start,
            TWILIO_EVENT_MEDIA: handle_media,
            TWILIO_EVENT_MARK: handle_mark,
            TWILIO_EVENT_STOP: handle_stop,
        }

    def new_context(self) -> StreamContext:
        return StreamContext(
            session=CallSession(),
            settings=self.settings,
            registry=self.registry,
            call_control=self.call_control,
            normalizer=self.normalizer,
        )

    async def handle_websocket(self, websocket: WebSocket):
        """Handle one media stream connection until the call ends.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object

        Malformed frames are logged and skipped; a stop event, a disconnect or a
        failed agent session ends the loop, after which the call is torn down.
        """
        await websocket.accept()
        logger.info("Media stream WebSocket accepted")
        context = self.new_context()

        try:
            while not context.session.closed:
                data = await websocket.receive_text()
                try:
                    message_dict = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON on media stream: {data[:100]}")
                    continue
                if not isinstance(message_dict, dict):
                    logger.warning(f"Ignoring non-object media stream frame: {data[:100]}")
                    continue

                event = message_dict.get("event")

                # Fast path for audio
                if event == TWILIO_EVENT_MEDIA:
                    await handle_media(message_dict, websocket, context)
                    continue

                logger.info(
                    f"Received event: {event}"
                    + (f" for stream: {context.session.stream_id}" if context.session.stream_id else "")
                )

                handler = self.handlers.get(event)
                if handler is None:
                    logger.warning(f"Unhandled event received: {event}")
                    continue
                await handler(message_dict, websocket, context)

                if event == TWILIO_EVENT_STOP:
                    break

        except WebSocketDisconnect:
            logger.info(f"Media stream disconnected for call: {context.session.call_id}")
        except Exception as e:
            logger.error(f"Error in media stream connection: {e}", exc_info=True)
        finally:
            if context.relay is not None:
                await context.relay.close("telephony stream ended")
            else:
                context.session.mark_closed()
                if (
                    websocket.client_state != WebSocketState.DISCONNECTED
                    and websocket.application_state != WebSocketState.DISCONNECTED
                ):
                    try:
                        await websocket.close()
                    except RuntimeError as e:
                        logger.debug(f"Media stream already closed: {e}")
            logger.info("Media stream WebSocket closed")

"""
Handles the lifecycle events of a Twilio media stream.

This module processes the connected, start and stop events. The start event
carries the stream and call identifiers and is where the agent session for the
call is opened; stop (or the socket closing) tears the whole call down.
"""

import logging
from typing import Any, Dict

from fastapi import WebSocket
from pydantic import ValidationError

from intake_agent.bot.session_relay import open_session
from intake_agent.bot.telephony import TwilioMediaLeg
from intake_agent.config.constants import LOGGER_NAME
from intake_agent.models.message_schemas import ConnectedMessage, StartMessage, StopMessage
from intake_agent.models.session import StreamContext

logger = logging.getLogger(LOGGER_NAME)


async def handle_connected(message: Dict[str, Any], websocket: WebSocket, context: StreamContext) -> None:
    """Log the protocol handshake that precedes the start event."""
    try:
        connected = ConnectedMessage(**message)
        logger.info(f"Media stream connected: protocol={connected.protocol}, version={connected.version}")
    except ValidationError as e:
        logger.error(f"Invalid connected message: {e}")


async def handle_start(message: Dict[str, Any], websocket: WebSocket, context: StreamContext) -> None:
    """
    Handle the start event from Twilio.

    The start event identifies the stream (streamSid) and the call (callSid) and
    lists the tracks that will be sent. The relay for the call is created here and
    the agent session is opened immediately; caller audio that arrives before the
    agent acknowledges its settings is held in pre-roll.

    Args:
        message: The start event
        websocket: The telephony WebSocket
        context: Per-connection state
    """
    try:
        start = StartMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid start message: {e}")
        return

    if context.relay is not None:
        logger.warning(f"Duplicate start event for stream {start.start.streamSid}; ignoring")
        return

    session = context.session
    session.stream_id = start.start.streamSid
    session.call_id = start.start.callSid
    logger.info(
        f"Stream started: stream={session.stream_id}, call={session.call_id}, tracks={start.start.tracks}"
    )

    telephony = TwilioMediaLeg(websocket, stream_sid=session.stream_id)
    context.relay = await open_session(
        session,
        telephony,
        context.settings,
        registry=context.registry,
        call_control=context.call_control,
        normalizer=context.normalizer,
    )
    if context.relay is None:
        logger.error(f"Could not open agent session for call {session.call_id}; call torn down")


async def handle_stop(message: Dict[str, Any], websocket: WebSocket, context: StreamContext) -> None:
    """Handle the stop event: the call has ended or the stream was stopped."""
    try:
        stop = StopMessage(**message)
        logger.info(f"Stream stopped: {stop.streamSid or context.session.stream_id}")
    except ValidationError as e:
        logger.error(f"Invalid stop message: {e}")

    if context.relay is not None:
        await context.relay.close("stop event")
    else:
        context.session.mark_closed()

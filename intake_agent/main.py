"""
FastAPI server for the real-time voice intake agent.

This module initializes the FastAPI application that Twilio talks to:
- POST /twilio/voice answers an incoming call with TwiML that connects the call
  audio to this server's media stream WebSocket
- the media stream WebSocket (AUDIO_STREAM_ROUTE, default /audio-stream) relays
  the call to a Deepgram Voice Agent session while the intake dialog runs
- /health and / report status and basic information
"""

import os
from pathlib import Path

import dotenv
from fastapi import FastAPI, Request, Response, WebSocket
from twilio.twiml.voice_response import VoiceResponse

from intake_agent.config.logging_config import configure_logging
from intake_agent.config.settings import RelaySettings
from intake_agent.services.call_control import TwilioCallControl
from intake_agent.services.normalizer import ShadowIntakeNormalizer
from intake_agent.websocket_manager import WebSocketManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Configure logging
logger = configure_logging()

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

settings = RelaySettings.from_env()

app = FastAPI(
    title="Voice Intake Agent",
    description="Twilio media stream relay to a Deepgram Voice Agent with a deterministic intake dialog",
    version="1.0.0",
)

call_control = TwilioCallControl.from_settings(settings)
websocket_manager = WebSocketManager(settings, call_control=call_control, normalizer=ShadowIntakeNormalizer())


def stream_url(request: Request) -> str:
    """Public wss:// URL of the media stream route for this deployment."""
    host = settings.audio_stream_domain or request.headers.get("host") or request.url.netloc
    return f"wss://{host}{settings.audio_stream_route}"


@app.post("/twilio/voice")
async def twilio_voice(request: Request):
    """Voice webhook for incoming calls.

    Returns:
        Response: TwiML connecting the call to the media stream WebSocket
    """
    response = VoiceResponse()
    url = stream_url(request)
    connect = response.connect()
    connect.stream(url=url)
    logger.info(f"Answering call with media stream at {url}")
    return Response(content=str(response), media_type="application/xml")


@app.websocket(settings.audio_stream_route)
async def audio_stream(websocket: WebSocket):
    """Media stream WebSocket opened by Twilio for each connected call."""
    await websocket_manager.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information, configuration flags and session counters
    """
    return {
        "status": "healthy",
        "deepgram_api_key_configured": bool(settings.deepgram_api_key),
        "call_control_configured": call_control.configured,
        "transfer_number_configured": bool(settings.transfer_number),
        **websocket_manager.registry.stats(),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Voice Intake Agent",
        "description": "Twilio media stream relay to a Deepgram Voice Agent with a deterministic intake dialog",
        "version": "1.0.0",
        "endpoints": {
            "/twilio/voice": "Twilio voice webhook returning <Connect><Stream> TwiML",
            settings.audio_stream_route: "Twilio media stream WebSocket",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        http="h11",
    )

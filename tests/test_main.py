import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from intake_agent.main import app, settings, websocket_manager

client = TestClient(app)


def test_health_check():
    """Test the health check endpoint returns correct response"""
    response = client.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert isinstance(response_json["deepgram_api_key_configured"], bool)
    assert isinstance(response_json["call_control_configured"], bool)
    assert isinstance(response_json["transfer_number_configured"], bool)
    assert response_json["active_sessions"] == websocket_manager.registry.active
    assert "total_sessions" in response_json


def test_root_endpoint():
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Voice Intake Agent"
    assert "description" in response_json
    assert response_json["version"] == "1.0.0"
    assert "/twilio/voice" in response_json["endpoints"]
    assert settings.audio_stream_route in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_voice_webhook_connects_stream_from_host_header():
    """Without a configured domain the stream URL uses the request host"""
    with patch.object(settings, "audio_stream_domain", None):
        response = client.post("/twilio/voice", headers={"host": "abc123.ngrok.app"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "<Connect><Stream" in response.text
    assert f'url="wss://abc123.ngrok.app{settings.audio_stream_route}"' in response.text


def test_voice_webhook_uses_configured_domain():
    with patch.object(settings, "audio_stream_domain", "voice.example.com"):
        response = client.post("/twilio/voice", headers={"host": "internal:8000"})

    assert f'url="wss://voice.example.com{settings.audio_stream_route}"' in response.text


def test_websocket_endpoint_initialization():
    """Test that websocket_manager is properly initialized"""
    assert websocket_manager is not None
    assert websocket_manager.settings is settings
    assert websocket_manager.normalizer is not None
    assert "start" in websocket_manager.handlers
    assert "media" in websocket_manager.handlers
    assert "stop" in websocket_manager.handlers


@pytest.mark.asyncio
async def test_websocket_endpoint():
    """Test that the media stream endpoint calls the handle_websocket method"""
    with patch("intake_agent.websocket_manager.WebSocketManager.handle_websocket") as mock_handle:
        mock_handle.return_value = None
        mock_websocket = MagicMock()

        websocket_route = next(route for route in app.routes if route.path == settings.audio_stream_route)
        await websocket_route.endpoint(mock_websocket)

        mock_handle.assert_called_once_with(mock_websocket)

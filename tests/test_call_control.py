from unittest.mock import MagicMock

import pytest

from intake_agent.config.settings import RelaySettings
from intake_agent.services.call_control import TwilioCallControl, build_transfer_twiml


def test_transfer_twiml_dials_number_with_caller_id():
    twiml = build_transfer_twiml("+15550001111", caller_id="+15551234567")

    assert "<Dial" in twiml
    assert 'callerId="+15551234567"' in twiml
    assert "<Number>+15550001111</Number>" in twiml


def test_transfer_twiml_without_caller_id():
    twiml = build_transfer_twiml("+15550001111")

    assert "callerId" not in twiml
    assert "<Number>+15550001111</Number>" in twiml


def test_from_settings_without_credentials():
    control = TwilioCallControl.from_settings(RelaySettings(transfer_number="+15550001111"))

    assert not control.configured
    assert control.transfer_number == "+15550001111"


def test_from_settings_builds_client():
    control = TwilioCallControl.from_settings(
        RelaySettings(twilio_account_sid="AC" + "0" * 32, twilio_auth_token="token")
    )

    assert control.configured


@pytest.mark.asyncio
async def test_transfer_updates_call_with_twiml():
    client = MagicMock()
    control = TwilioCallControl(transfer_number="+15550001111", client=client)

    ok = await control.transfer("CA123", caller_id="+15551234567")

    assert ok is True
    client.calls.assert_called_once_with("CA123")
    twiml = client.calls.return_value.update.call_args.kwargs["twiml"]
    assert "<Number>+15550001111</Number>" in twiml


@pytest.mark.asyncio
async def test_transfer_without_number_is_refused():
    client = MagicMock()
    control = TwilioCallControl(client=client)

    assert await control.transfer("CA123") is False
    client.calls.assert_not_called()


@pytest.mark.asyncio
async def test_transfer_without_call_sid_is_refused():
    client = MagicMock()
    control = TwilioCallControl(transfer_number="+15550001111", client=client)

    assert await control.transfer(None) is False


@pytest.mark.asyncio
async def test_transfer_error_returns_false():
    client = MagicMock()
    client.calls.return_value.update.side_effect = RuntimeError("twilio down")
    control = TwilioCallControl(transfer_number="+15550001111", client=client)

    assert await control.transfer("CA123") is False


@pytest.mark.asyncio
async def test_hangup_completes_call():
    client = MagicMock()
    control = TwilioCallControl(client=client)

    assert await control.hangup("CA123") is True
    client.calls.return_value.update.assert_called_once_with(status="completed")


@pytest.mark.asyncio
async def test_hangup_without_client():
    assert await TwilioCallControl().hangup("CA123") is False

"""
Call control through the Twilio REST API.

Used once per call when the intake finishes: the live call is either redirected
to a person (new TwiML with a <Dial>) or completed. The Twilio helper library is
synchronous, so every request runs in the default executor to keep the event
loop responsive. Failures are logged and reported as False; they never raise.
"""

import asyncio
import logging
from typing import Optional

from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.config.settings import RelaySettings

logger = logging.getLogger(LOGGER_NAME)


def build_transfer_twiml(transfer_number: str, caller_id: Optional[str] = None) -> str:
    """
    Build TwiML that dials the transfer number.

    Args:
        transfer_number: Destination number
        caller_id: Number shown to the destination, usually the caller's own phone

    Returns:
        str: The TwiML document
    """
    response = VoiceResponse()
    dial = response.dial(caller_id=caller_id) if caller_id else response.dial()
    dial.number(transfer_number)
    return str(response)


class TwilioCallControl:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        transfer_number: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        self.transfer_number = transfer_number
        self.client = client
        if self.client is None and account_sid and auth_token:
            self.client = Client(account_sid, auth_token)

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "TwilioCallControl":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            transfer_number=settings.transfer_number,
        )

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def transfer(self, call_sid: Optional[str], caller_id: Optional[str] = None) -> bool:
        """
        Redirect a live call to the transfer number.

        Args:
            call_sid: The call to redirect
            caller_id: Caller id to present on the outbound leg

        Returns:
            bool: True if Twilio accepted the update
        """
        if not self.client or not call_sid or not self.transfer_number:
            logger.warning(
                f"Cannot transfer call {call_sid}: "
                f"client configured={self.configured}, transfer number set={bool(self.transfer_number)}"
            )
            return False
        twiml = build_transfer_twiml(self.transfer_number, caller_id)
        try:
            call = await self._update(call_sid, twiml=twiml)
            logger.info(
                f"Transfer requested for call {call_sid} to {self.transfer_number}; "
                f"status={getattr(call, 'status', 'unknown')}"
            )
            return True
        except Exception as e:
            logger.error(f"Transfer failed for call {call_sid}: {e}", exc_info=True)
            return False

    async def hangup(self, call_sid: Optional[str]) -> bool:
        """Complete a live call; returns True if Twilio accepted the update."""
        if not self.client or not call_sid:
            logger.warning(f"Cannot hang up call {call_sid}: client configured={self.configured}")
            return False
        try:
            await self._update(call_sid, status="completed")
            logger.info(f"Hangup requested for call {call_sid}")
            return True
        except Exception as e:
            logger.error(f"Hangup failed for call {call_sid}: {e}", exc_info=True)
            return False

    async def _update(self, call_sid: str, **params):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.client.calls(call_sid).update(**params))

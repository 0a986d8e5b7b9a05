"""
Per-call intake controller.

Glue between the intake state machine and the outside world: prompts from the
machine go to the prompt dispatcher, field and state changes are logged, and the
terminal DoneEvent triggers exactly one call-control action (transfer to a person
or hang up) after a closing line.
"""

import asyncio
import logging
from typing import Optional

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.config.settings import RelaySettings
from intake_agent.intake.dispatcher import PromptDispatcher
from intake_agent.intake.events import (
    DoneEvent,
    FieldSetEvent,
    IntakeEvent,
    RepromptEvent,
    SayEvent,
    StateEvent,
)
from intake_agent.intake.state_machine import IntakeStateMachine
from intake_agent.services.call_control import TwilioCallControl

logger = logging.getLogger(LOGGER_NAME)

CONFIRMED_CLOSING = "Thanks. I'll connect you now."
UNCONFIRMED_CLOSING = "Alright, I'll connect you to our team for further assistance."
NO_INPUT_TRANSFER_CLOSING = "Thank you. We will have someone follow up with you shortly."
NO_INPUT_GOODBYE = "I'm sorry, I haven't heard from you. Please call us again later. Goodbye."
FAILED_ATTEMPTS_CLOSING = "I'm having trouble understanding, so I'll connect you with our team now."
TRANSFER_FALLBACK = "I couldn't connect you just now, but I've noted your details for a quick call back."


def closing_line(event: DoneEvent) -> str:
    if event.outcome == "confirmed":
        return CONFIRMED_CLOSING
    if event.outcome == "unconfirmed":
        return UNCONFIRMED_CLOSING
    if event.outcome == "failed_attempts":
        return FAILED_ATTEMPTS_CLOSING
    if event.handoff == "hangup":
        return NO_INPUT_GOODBYE
    return NO_INPUT_TRANSFER_CLOSING


class IntakeController:
    """
    Runs the intake dialog for one call.

    Args:
        call_id: Telephony call identifier, used for call control
        dispatcher: Serialized prompt output for this call
        settings: Dialog timing and policy
        call_control: Transfer/hangup collaborator; None disables call control
    """

    def __init__(
        self,
        call_id: Optional[str],
        dispatcher: PromptDispatcher,
        settings: RelaySettings,
        call_control: Optional[TwilioCallControl] = None,
    ):
        self.call_id = call_id
        self.dispatcher = dispatcher
        self.call_control = call_control
        self.machine = IntakeStateMachine.from_settings(self.on_event, settings)
        self.result: Optional[DoneEvent] = None
        self.handoff_ok: Optional[bool] = None
        self._done_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self.machine.start()

    def handle_user_text(self, text: str) -> None:
        self.machine.handle_user_text(text)

    def on_event(self, event: IntakeEvent) -> None:
        """Listener for every event the state machine emits."""
        if isinstance(event, FieldSetEvent):
            logger.info(f"field_set {event.field.value}={event.value} for call: {self.call_id}")
        elif isinstance(event, StateEvent):
            previous = event.previous.value if event.previous else None
            logger.info(f"state {previous} -> {event.state.value} for call: {self.call_id}")
        elif isinstance(event, (SayEvent, RepromptEvent)):
            logger.debug(f"prompt ({event.kind}) at {event.state.value}: {event.text}")
            self.dispatcher.say(event.text)
        elif isinstance(event, DoneEvent):
            if self._done_task is not None:
                return
            self.result = event
            logger.info(f"Intake done for call {self.call_id}: {event.outcome}; fields={event.fields}")
            self._done_task = asyncio.create_task(self._finish(event))

    async def _finish(self, event: DoneEvent) -> None:
        self.dispatcher.say(closing_line(event))
        await self.dispatcher.drain()

        if self.call_control is None:
            logger.warning(f"No call control configured; leaving call {self.call_id} with the agent")
            self.handoff_ok = False
            return

        if event.handoff == "hangup":
            self.handoff_ok = await self.call_control.hangup(self.call_id)
            return

        self.handoff_ok = await self.call_control.transfer(self.call_id, caller_id=event.fields.get("phone"))
        if not self.handoff_ok:
            self.dispatcher.say(TRANSFER_FALLBACK)

    async def wait_done(self) -> None:
        """Wait for the closing line and the call-control action, if the intake has finished."""
        if self._done_task is not None:
            await asyncio.wait({self._done_task})

    def close(self) -> None:
        """Silence the dialog; an in-flight call-control request is left to finish."""
        self.machine.teardown()
        self.dispatcher.close()

"""
Typed events emitted by the intake state machine.

The state machine never touches a transport; it hands these events to a single
listener callable, which is how the intake controller (or a test) observes it.
"""

from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel

from intake_agent.models.intake import DialogState, IntakeField

Outcome = Literal["confirmed", "unconfirmed", "no_input", "failed_attempts"]
Handoff = Literal["transfer", "hangup"]


class FieldSetEvent(BaseModel):
    kind: Literal["field_set"] = "field_set"
    field: IntakeField
    value: str
    state: DialogState


class StateEvent(BaseModel):
    kind: Literal["state"] = "state"
    state: DialogState
    previous: Optional[DialogState] = None


class SayEvent(BaseModel):
    """A prompt spoken on entering a state."""

    kind: Literal["say"] = "say"
    text: str
    state: DialogState


class RepromptEvent(BaseModel):
    """A prompt repeated after silence, a nudge or an unclear answer."""

    kind: Literal["reprompt"] = "reprompt"
    text: str
    state: DialogState
    reason: Literal["timeout", "nudge", "unclear", "retry"] = "timeout"
    attempt: int = 1


class DoneEvent(BaseModel):
    """Terminal event carrying the collected fields and the read-back summary."""

    kind: Literal["done"] = "done"
    fields: Dict[str, Optional[str]]
    summary: str
    outcome: Outcome
    handoff: Handoff = "transfer"


IntakeEvent = Union[FieldSetEvent, StateEvent, SayEvent, RepromptEvent, DoneEvent]

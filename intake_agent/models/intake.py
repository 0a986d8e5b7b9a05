"""
Intake data model: the enumerated field set, the per-call field record and the
dialog states of the intake state machine.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class IntakeField(str, Enum):
    """Semantic fields collected during an intake call."""

    CLIENT_TYPE = "client_type"
    FULL_NAME = "full_name"
    PHONE = "phone"
    EMAIL = "email"
    INCIDENT = "incident"
    DATE = "date"
    LOCATION = "location"
    INJURIES = "injuries"
    TREATMENT = "treatment"


class DialogState(str, Enum):
    """States of the deterministic intake dialog."""

    AWAIT_CLIENT_TYPE = "AWAIT_CLIENT_TYPE"
    AWAIT_NAME = "AWAIT_NAME"
    AWAIT_PHONE = "AWAIT_PHONE"
    AWAIT_EMAIL = "AWAIT_EMAIL"
    AWAIT_INCIDENT = "AWAIT_INCIDENT"
    AWAIT_DATE = "AWAIT_DATE"
    AWAIT_LOCATION = "AWAIT_LOCATION"
    CONFIRM = "CONFIRM"
    AWAIT_CORRECTION = "AWAIT_CORRECTION"
    CONFIRM_AFTER_CORRECTION = "CONFIRM_AFTER_CORRECTION"
    DONE = "DONE"


# Canonical question order; CONFIRM follows the last entry
FIELD_STATES: Dict[DialogState, IntakeField] = {
    DialogState.AWAIT_CLIENT_TYPE: IntakeField.CLIENT_TYPE,
    DialogState.AWAIT_NAME: IntakeField.FULL_NAME,
    DialogState.AWAIT_PHONE: IntakeField.PHONE,
    DialogState.AWAIT_EMAIL: IntakeField.EMAIL,
    DialogState.AWAIT_INCIDENT: IntakeField.INCIDENT,
    DialogState.AWAIT_DATE: IntakeField.DATE,
    DialogState.AWAIT_LOCATION: IntakeField.LOCATION,
}

QUESTION_ORDER: List[DialogState] = list(FIELD_STATES) + [DialogState.CONFIRM]

CONFIRM_STATES = frozenset({DialogState.CONFIRM, DialogState.CONFIRM_AFTER_CORRECTION})


class FieldRecord(BaseModel):
    """
    Nullable normalized values for every intake field.

    Each call owns two of these: one filled best-effort by the shadow extractor and
    one filled by the state machine, which is the authoritative copy.
    """

    client_type: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    incident: Optional[str] = None
    date: Optional[str] = None
    location: Optional[str] = None
    injuries: Optional[str] = None
    treatment: Optional[str] = None

    def get(self, field: IntakeField) -> Optional[str]:
        return getattr(self, IntakeField(field).value)

    def set(self, field: IntakeField, value: Optional[str]) -> bool:
        """Store value if it is non-empty and differs from the current one; return True if it changed."""
        if not value:
            return False
        name = IntakeField(field).value
        if getattr(self, name) == value:
            return False
        setattr(self, name, value)
        return True

    def is_complete(self) -> bool:
        return bool(
            self.client_type
            and self.full_name
            and (self.phone or self.email)
            and self.incident
            and self.date
            and self.location
        )

    def missing(self) -> List[IntakeField]:
        return [field for field in FIELD_STATES.values() if not self.get(field)]

    def snapshot(self) -> Dict[str, object]:
        data: Dict[str, object] = {field.value: self.get(field) for field in FIELD_STATES.values()}
        data["complete"] = self.is_complete()
        return data

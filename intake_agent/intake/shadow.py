"""
Transcript de-duplication and shadow field extraction.

The agent leg reports the same caller utterance through several event types
(ConversationText, History, UserTranscript, ...), so every user line first
passes a small ring of recently seen strings. New lines are then run through
the field extractors to fill a best-effort shadow record. The shadow record is
advisory: it seeds post-call normalization and never drives a spoken prompt.
"""

import logging
from collections import deque
from typing import Deque, List

from intake_agent.config.constants import LOGGER_NAME, ROLE_USER
from intake_agent.intake.extractors import (
    extract_client_type,
    extract_date,
    extract_email,
    extract_full_name,
    extract_incident,
    extract_location,
    extract_phone,
)
from intake_agent.models.intake import FieldRecord, IntakeField

logger = logging.getLogger(LOGGER_NAME)

DEDUPE_RING_SIZE = 25
SHADOW_INCIDENT_MIN_WORDS = 6

# Extractors tried in priority order; the incident fallback runs only if none matched
SHADOW_EXTRACTORS = [
    (IntakeField.CLIENT_TYPE, extract_client_type),
    (IntakeField.FULL_NAME, lambda text: extract_full_name(text, allow_bare=False)),
    (IntakeField.PHONE, extract_phone),
    (IntakeField.EMAIL, extract_email),
    (IntakeField.DATE, extract_date),
    (IntakeField.LOCATION, extract_location),
]


class TranscriptDeduplicator:
    """Remembers the last few utterances of a call and rejects exact repeats."""

    def __init__(self, capacity: int = DEDUPE_RING_SIZE):
        self._recent: Deque[str] = deque(maxlen=capacity)

    def accept(self, text: str) -> bool:
        """Return True the first time text is seen within the ring, False for a repeat."""
        if text in self._recent:
            return False
        self._recent.append(text)
        return True


class ShadowExtractor:
    """
    Per-call shadow intake.

    Args:
        log_mode: "off" disables extraction (de-duplication still applies),
            "fields" logs each field as it is found, "summary" logs a snapshot when
            anything changes, "verbose" does both and logs every new utterance
    """

    def __init__(self, log_mode: str = "summary", ring_size: int = DEDUPE_RING_SIZE):
        self.log_mode = log_mode
        self.record = FieldRecord()
        self.utterances: List[str] = []
        self._dedupe = TranscriptDeduplicator(ring_size)

    @property
    def enabled(self) -> bool:
        return self.log_mode != "off"

    def on_utterance(self, role: str, text: str) -> bool:
        """
        Consume one transcript event.

        Args:
            role: Speaker role reported by the agent
            text: Recognized text

        Returns:
            bool: True if this is a new caller utterance that should reach the dialog
        """
        if (role or "").lower() != ROLE_USER:
            return False
        utterance = (text or "").strip()
        if not utterance or not self._dedupe.accept(utterance):
            return False
        self.utterances.append(utterance)
        if self.enabled:
            self._extract(utterance)
        return True

    def _extract(self, utterance: str) -> None:
        if self.log_mode == "verbose":
            logger.debug(f"Shadow intake saw: {utterance}")
        changed = []
        for field, extractor in SHADOW_EXTRACTORS:
            if self.record.get(field):
                continue
            if self.record.set(field, extractor(utterance)):
                changed.append(field)
        if not changed and not self.record.incident:
            if self.record.set(IntakeField.INCIDENT, extract_incident(utterance, SHADOW_INCIDENT_MIN_WORDS)):
                changed.append(IntakeField.INCIDENT)
        if not changed:
            return
        if self.log_mode in ("fields", "verbose"):
            for field in changed:
                logger.info(f"Shadow intake field: {field.value}={self.record.get(field)}")
        if self.log_mode in ("summary", "verbose"):
            logger.info(f"Shadow intake snapshot: {self.record.snapshot()}")

    def log_final(self) -> None:
        if self.enabled:
            logger.info(f"Shadow intake final: {self.record.snapshot()}")

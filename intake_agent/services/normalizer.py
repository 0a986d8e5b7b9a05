"""
Post-call normalization of the shadow intake.

After a call closes, the relay hands the transcript log and the shadow field
record to an IntakeNormalizer. The default ShadowIntakeNormalizer maps the shadow
fields to the canonical intake record, attaches base confidences and the caller
utterances that support each value, stamps call metadata and validates the result
with pydantic. checkpoint() gives the same mapping mid-call without validation.
"""

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Pattern

from pydantic import BaseModel, Field, ValidationError, field_validator

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.intake.extractors import FIELD_EXTRACTORS
from intake_agent.models.intake import FieldRecord, IntakeField

logger = logging.getLogger(LOGGER_NAME)

E164_US_PATTERN: Pattern = re.compile(r"^\+1\d{10}$")
EMAIL_PATTERN: Pattern = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
NUMERIC_DATE_PATTERN: Pattern = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?$")

USER_PREFIX = "User: "

# Canonical record key for each shadow field
RECORD_KEYS: Dict[IntakeField, str] = {
    IntakeField.CLIENT_TYPE: "clientType",
    IntakeField.FULL_NAME: "fullName",
    IntakeField.PHONE: "phone",
    IntakeField.EMAIL: "email",
    IntakeField.INCIDENT: "incidentDescription",
    IntakeField.DATE: "incidentDate",
    IntakeField.LOCATION: "incidentLocation",
}

BASE_CONFIDENCE: Dict[str, float] = {
    "clientType": 0.7,
    "fullName": 0.6,
    "phone": 0.85,
    "email": 0.85,
    "incidentDescription": 0.55,
    "incidentDate": 0.7,
    "incidentLocation": 0.6,
}


class IntakeMeta(BaseModel):
    """Provenance of a normalized intake record."""

    transcriptHash: str = Field(..., description="SHA-1 of the newline-joined transcript log")
    callStartedAt: Optional[str] = Field(None, description="ISO timestamp of session open")
    callEndedAt: Optional[str] = Field(None, description="ISO timestamp of session close")
    source: str = Field("post-call", description="Where the record was produced")


class IntakeRecord(BaseModel):
    """Canonical structured intake for one call."""

    clientType: Optional[Literal["existing", "new"]] = None
    fullName: Optional[str] = None
    phone: Optional[str] = Field(None, description="US number in +1XXXXXXXXXX form")
    email: Optional[str] = None
    incidentDescription: Optional[str] = None
    incidentDate: Optional[str] = Field(None, description="yyyy-mm-dd when numeric, otherwise as spoken")
    incidentLocation: Optional[str] = None
    meta: IntakeMeta
    confidence: Dict[str, float] = Field(default_factory=dict)
    sourceUtterances: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("phone")
    def validate_phone(cls, v):
        """Validate that the phone number is a normalized US number."""
        if v is not None and not E164_US_PATTERN.match(v):
            raise ValueError(f"Phone must look like +1XXXXXXXXXX, got {v}")
        return v

    @field_validator("email")
    def validate_email(cls, v):
        """Validate that the email address has a user, a domain and a suffix."""
        if v is not None and not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email address: {v}")
        return v

    @field_validator("confidence")
    def validate_confidence(cls, v):
        """Validate that every confidence lies in [0, 1]."""
        for key, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"Confidence for {key} out of range: {score}")
        return v


class NormalizationResult(BaseModel):
    record: Optional[IntakeRecord] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors


def transcript_hash(transcripts: List[str]) -> str:
    return hashlib.sha1("\n".join(transcripts).encode("utf-8")).hexdigest()


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Convert mm/dd[/yy[yy]] to yyyy-mm-dd; anything else is returned unchanged.

    Two-digit years are read as 20xx; a missing year is the current one.
    """
    if not value:
        return value
    match = NUMERIC_DATE_PATTERN.match(value.strip())
    if not match:
        return value
    month, day, year = match.groups()
    if year is None:
        year = str(datetime.now().year)
    elif len(year) == 2:
        year = f"20{year}"
    elif len(year) != 4:
        return value
    return f"{year}-{int(month):02d}-{int(day):02d}"


def user_utterances(transcripts: List[str]) -> List[str]:
    """Caller lines from a transcript log, without the speaker prefix."""
    return [line[len(USER_PREFIX):].strip() for line in transcripts if line.startswith(USER_PREFIX)]


def supporting_utterances(field: IntakeField, value: str, utterances: List[str]) -> List[str]:
    """Caller utterances that yield value through the field's extractor or quote it directly."""
    needle = value.lower()
    extractor = FIELD_EXTRACTORS.get(field)
    matches = []
    for utterance in utterances:
        if needle in utterance.lower() or (extractor is not None and extractor(utterance) == value):
            matches.append(utterance)
    return matches


class IntakeNormalizer:
    """Interface for post-call normalization."""

    async def normalize(
        self,
        transcripts: List[str],
        shadow: FieldRecord,
        call_started_at: Optional[str] = None,
        call_ended_at: Optional[str] = None,
    ) -> NormalizationResult:
        raise NotImplementedError

    def checkpoint(self, transcripts: List[str], shadow: FieldRecord) -> Dict[str, object]:
        raise NotImplementedError


class ShadowIntakeNormalizer(IntakeNormalizer):
    """Builds the canonical record from the shadow field record alone."""

    def _fields(self, shadow: FieldRecord) -> Dict[str, Optional[str]]:
        data = {key: shadow.get(field) for field, key in RECORD_KEYS.items()}
        data["incidentDate"] = normalize_date(data["incidentDate"])
        return data

    def _confidence(self, data: Dict[str, Optional[str]]) -> Dict[str, float]:
        return {key: BASE_CONFIDENCE[key] for key, value in data.items() if value}

    async def normalize(
        self,
        transcripts: List[str],
        shadow: FieldRecord,
        call_started_at: Optional[str] = None,
        call_ended_at: Optional[str] = None,
    ) -> NormalizationResult:
        data = self._fields(shadow)
        utterances = user_utterances(transcripts)
        evidence = {}
        for field, key in RECORD_KEYS.items():
            raw = shadow.get(field)
            if raw:
                evidence[key] = supporting_utterances(field, raw, utterances)

        try:
            record = IntakeRecord(
                **data,
                meta=IntakeMeta(
                    transcriptHash=transcript_hash(transcripts),
                    callStartedAt=call_started_at,
                    callEndedAt=call_ended_at or datetime.now(timezone.utc).isoformat(),
                    source="post-call",
                ),
                confidence=self._confidence(data),
                sourceUtterances=evidence,
            )
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            logger.warning(f"Intake record failed validation: {errors}")
            return NormalizationResult(record=None, errors=errors)

        logger.info(f"Normalized intake: {record.model_dump(exclude={'sourceUtterances'})}")
        return NormalizationResult(record=record)

    def checkpoint(self, transcripts: List[str], shadow: FieldRecord) -> Dict[str, object]:
        """Unvalidated mid-call snapshot of the record built so far."""
        data = self._fields(shadow)
        return {
            **data,
            "meta": {"transcriptHash": transcript_hash(transcripts), "source": "live-call"},
            "confidence": self._confidence(data),
            "sourceUtterances": {},
        }

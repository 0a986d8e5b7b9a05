import hashlib
from datetime import datetime

import pytest
from pydantic import ValidationError

from intake_agent.models.intake import FieldRecord
from intake_agent.services.normalizer import (
    IntakeMeta,
    IntakeNormalizer,
    IntakeRecord,
    ShadowIntakeNormalizer,
    normalize_date,
    supporting_utterances,
    transcript_hash,
    user_utterances,
)
from intake_agent.models.intake import IntakeField

TRANSCRIPTS = [
    "User: I was in a car accident",
    "Agent: I'm sorry to hear that. What is your full name?",
    "User: My name is John Smith",
    "User: 555-123-4567",
    "User: it happened on 06/05/2025 in Austin, TX",
]


@pytest.fixture
def shadow():
    return FieldRecord(
        client_type="new",
        full_name="John Smith",
        phone="+15551234567",
        date="06/05/2025",
        location="Austin, TX",
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        ("06/05/2025", "2025-06-05"),
        ("6/5/25", "2025-06-05"),
        ("yesterday", "yesterday"),
        ("1/2/123", "1/2/123"),
        (None, None),
    ],
)
def test_normalize_date(value, expected):
    assert normalize_date(value) == expected


def test_normalize_date_without_year_uses_current_year():
    assert normalize_date("06/05") == f"{datetime.now().year}-06-05"


def test_user_utterances_strip_prefix():
    assert user_utterances(TRANSCRIPTS) == [
        "I was in a car accident",
        "My name is John Smith",
        "555-123-4567",
        "it happened on 06/05/2025 in Austin, TX",
    ]


def test_supporting_utterances_match_through_extractor():
    utterances = user_utterances(TRANSCRIPTS)

    assert supporting_utterances(IntakeField.PHONE, "+15551234567", utterances) == ["555-123-4567"]
    assert supporting_utterances(IntakeField.FULL_NAME, "John Smith", utterances) == ["My name is John Smith"]


@pytest.mark.asyncio
async def test_normalize_builds_valid_record(shadow):
    normalizer = ShadowIntakeNormalizer()

    result = await normalizer.normalize(
        TRANSCRIPTS, shadow, call_started_at="2025-06-05T10:00:00+00:00", call_ended_at="2025-06-05T10:05:00+00:00"
    )

    assert result.ok
    record = result.record
    assert record.clientType == "new"
    assert record.fullName == "John Smith"
    assert record.phone == "+15551234567"
    assert record.email is None
    assert record.incidentDate == "2025-06-05"
    assert record.incidentLocation == "Austin, TX"
    assert record.confidence == {
        "clientType": 0.7,
        "fullName": 0.6,
        "phone": 0.85,
        "incidentDate": 0.7,
        "incidentLocation": 0.6,
    }
    assert record.sourceUtterances["incidentLocation"] == ["it happened on 06/05/2025 in Austin, TX"]
    assert "email" not in record.sourceUtterances
    assert record.meta.transcriptHash == hashlib.sha1("\n".join(TRANSCRIPTS).encode("utf-8")).hexdigest()
    assert record.meta.callStartedAt == "2025-06-05T10:00:00+00:00"
    assert record.meta.callEndedAt == "2025-06-05T10:05:00+00:00"
    assert record.meta.source == "post-call"


@pytest.mark.asyncio
async def test_normalize_stamps_end_time_when_missing(shadow):
    result = await ShadowIntakeNormalizer().normalize(TRANSCRIPTS, shadow)

    assert result.record.meta.callEndedAt is not None


@pytest.mark.asyncio
async def test_normalize_reports_validation_errors():
    shadow = FieldRecord(phone="+442071234567", email="not-an-email")

    result = await ShadowIntakeNormalizer().normalize([], shadow)

    assert not result.ok
    assert result.record is None
    assert len(result.errors) == 2
    assert result.errors[0].startswith("phone")
    assert result.errors[1].startswith("email")


def test_checkpoint_is_unvalidated_snapshot(shadow):
    snapshot = ShadowIntakeNormalizer().checkpoint(TRANSCRIPTS, shadow)

    assert snapshot["incidentDate"] == "2025-06-05"
    assert snapshot["meta"] == {"transcriptHash": transcript_hash(TRANSCRIPTS), "source": "live-call"}
    assert snapshot["sourceUtterances"] == {}
    assert snapshot["confidence"]["phone"] == 0.85


def test_record_rejects_out_of_range_confidence():
    with pytest.raises(ValidationError):
        IntakeRecord(meta=IntakeMeta(transcriptHash="abc"), confidence={"phone": 1.5})


def test_record_rejects_unknown_client_type():
    with pytest.raises(ValidationError):
        IntakeRecord(meta=IntakeMeta(transcriptHash="abc"), clientType="former")


@pytest.mark.asyncio
async def test_base_normalizer_is_abstract():
    normalizer = IntakeNormalizer()

    with pytest.raises(NotImplementedError):
        await normalizer.normalize([], FieldRecord())
    with pytest.raises(NotImplementedError):
        normalizer.checkpoint([], FieldRecord())

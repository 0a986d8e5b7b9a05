"""
Field extractors for caller utterances.

Every extractor is a pure function mapping one raw utterance to a normalized
candidate value for a single intake field, or None when the utterance does not
contain one. The dialog state machine, the shadow extractor and the correction
flow all share these functions; none of them keep state.

Normalized forms:
- client type: "existing" or "new"
- full name: title-cased first and last name (optionally a middle name)
- phone: "+1" followed by ten digits
- email: lower-cased address, spoken "at"/"dot" accepted
- date: "MM/DD/YYYY", or a relative phrase such as "yesterday" or "last friday"
- location: "City, ST" when a state is given, otherwise the title-cased place
"""

import datetime
import re
from typing import Callable, Dict, List, Optional, Tuple

from intake_agent.models.intake import IntakeField

# Words that never start or belong to a person's name
NAME_STOPWORDS = frozenset(
    {
        "a", "about", "accident", "ago", "an", "and", "are", "at", "but", "calling", "car",
        "crash", "date", "email", "for", "from", "good", "happened", "hello", "hi", "i",
        "in", "is", "it", "just", "location", "my", "name", "no", "not", "number", "of",
        "okay", "ok", "on", "phone", "please", "right", "so", "sorry", "speaking", "sure",
        "thanks", "thank", "that", "the", "this", "to", "today", "um", "uh", "was", "week",
        "well", "what", "when", "where", "wrong", "yeah", "yes", "yesterday", "you",
    }
)

# Words that end a place phrase such as "in Austin last week"
LOCATION_STOPWORDS = frozenset(
    {
        "about", "after", "ago", "and", "around", "at", "because", "before", "but", "during",
        "in", "last", "on", "this", "today", "when", "while", "with", "yesterday",
    }
)

US_STATE_CODES = frozenset(
    "AL AK AZ AR CA CO CT DE DC FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO MT NE NV NH "
    "NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY".split()
)

US_STATE_NAMES = frozenset(
    {
        "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado", "Connecticut",
        "Delaware", "Florida", "Georgia", "Hawaii", "Idaho", "Illinois", "Indiana", "Iowa",
        "Kansas", "Kentucky", "Louisiana", "Maine", "Maryland", "Massachusetts", "Michigan",
        "Minnesota", "Mississippi", "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire",
        "New Jersey", "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
        "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina", "South Dakota",
        "Tennessee", "Texas", "Utah", "Vermont", "Virginia", "Washington", "West Virginia",
        "Wisconsin", "Wyoming",
    }
)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

_NOT_A_CLIENT = re.compile(r"\bnot\s+(?:an?\s+)?(?:current\s+|existing\s+)?client\b")
_EXISTING = re.compile(
    r"\b(existing|current(?:ly)?\s+(?:an?\s+)?client|already\s+(?:an?\s+)?client|my\s+attorney|my\s+lawyer)\b"
)
_NEW = re.compile(
    r"\b(new|potential|accident|injur\w*|crash|collision|hurt|hit|fell|fall|slip(?:ped)?|trip(?:ped)?|"
    r"rear[- ]?ended|truck|car|bus|uber|lyft)\b"
)

_NAME_INTENT = re.compile(
    r"\b(?:my\s+name\s+is|my\s+name's|name\s+is|this\s+is|i\s+am|i'm|it's|it\s+is)\s+"
    r"([a-z][a-z'\-]+(?:\s+[a-z][a-z'\-]+){0,3})",
    re.IGNORECASE,
)
_NAME_CAPITALIZED = re.compile(r"\b([A-Z][a-z]+)\s+([A-Z][a-z]+(?:-[A-Z][a-z]+)?)\b")
_NAME_TOKEN = re.compile(r"^[a-z][a-z'\-]+$", re.IGNORECASE)

_PHONE = re.compile(r"(?<!\d)(\+?1[\s\-.]?)?(\(?\d{3}\)?[\s\-.]?\d{3}[\s\-.]?\d{4})(?!\d)")
_DIGITS_ONLY = re.compile(r"[\d\s\-.()+]+")

_EMAIL = re.compile(r"[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}", re.IGNORECASE)
_SPOKEN_AT = re.compile(r"\s+at\s+", re.IGNORECASE)
_SPOKEN_DOT = re.compile(r"\s+dot\s+", re.IGNORECASE)

_DATE_NUMERIC = re.compile(r"\b(\d{1,2})[/\-](\d{1,2})(?:[/\-](\d{2,4}))?\b")
_DATE_MONTH = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sept|sep|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b(?:,?\s*(\d{4}))?",
    re.IGNORECASE,
)
_DATE_RELATIVE = re.compile(
    r"\b(today|yesterday|last\s+night|last\s+week|last\s+month|"
    r"last\s+(?:mon|tues|tue|wednes|wed|thurs|thu|fri|satur|sat|sun)(?:day)?)\b",
    re.IGNORECASE,
)

_LOCATION_PREFIX = re.compile(r"\b(?:in|at|near)\s+", re.IGNORECASE)
_LOCATION_PHRASE = re.compile(r"([A-Za-z][A-Za-z.'\-]*(?:\s+[A-Za-z.'\-]+)*)(?:,\s*([A-Za-z]{2,}))?")
_LOCATION_FALSE_POSITIVE = re.compile(
    r"^(?:an?|the|my)\s+(?:accident|injury|crash|collision|car|hospital|morning|afternoon|evening|night)\b",
    re.IGNORECASE,
)
_LOCATION_CITY_STATE = re.compile(r"^([A-Za-z][A-Za-z .'\-]*?),?\s+([A-Za-z]{2})\.?$")

_INCIDENT_VOCAB = re.compile(
    r"\b(accident|injur\w*|fell|fall|collision|crash|rear[- ]?ended|hit|dog\s+bite|bite|slip|trip|"
    r"work|car|uber|lyft|truck|bicycle|pedestrian|bus|motorcycle)\b",
    re.IGNORECASE,
)
_INJURY_VOCAB = re.compile(
    r"\b(injur\w*|hurt|pain|fracture\w*|broke|broken|bruise\w*|wound\w*|whiplash|concussion|"
    r"back|neck|leg|arm|head|shoulder|knee)\b",
    re.IGNORECASE,
)
_TREATMENT_VOCAB = re.compile(
    r"\b(treat\w*|surgery|therapy|physical\s+therapy|medication|doctor|hospital|er|"
    r"emergency\s+room|chiropractor|clinic|x-?ray)\b",
    re.IGNORECASE,
)

_AFFIRMATIVE = re.compile(
    r"\b(yes|yeah|yep|yup|all\s+right|alright|sounds\s+good|looks\s+good|uh\s+huh|affirmative|"
    r"ok|okay|sure|exactly|perfect)\b",
    re.IGNORECASE,
)
# "correct" and "right" only confirm as a predicate ("that's correct") or on their own
_AFFIRMATIVE_PREDICATE = re.compile(
    r"\b(?:that'?s|that\s+is|it'?s|it\s+is|everything'?s|everything\s+is|all\s+is|you'?re|you\s+are|"
    r"is|are|was|sounds|looks)\s+(?:all\s+|exactly\s+|totally\s+)?(?:correct|right)\b"
    r"|^\W*(?:correct|right)\W*$",
    re.IGNORECASE,
)
_LEADING_NEGATIVE = re.compile(r"^\W*(no|nope|nah|negative)\b", re.IGNORECASE)
_NEGATIVE = re.compile(r"\b(no|nope|nah|not|incorrect|wrong)\b", re.IGNORECASE)
_CORRECTION = re.compile(
    r"\b(wrong|incorrect|fix|change|update|mistake|not\s+right|not\s+correct|not\s+(?:ok|okay)|that'?s\s+not)\b",
    re.IGNORECASE,
)

# Keyword hints naming the field a caller wants to correct, checked in order
_FIELD_HINTS: List[Tuple[IntakeField, re.Pattern]] = [
    (IntakeField.EMAIL, re.compile(r"\b(e-?mail)\b", re.IGNORECASE)),
    (IntakeField.PHONE, re.compile(r"\b(phone|number|cell)\b", re.IGNORECASE)),
    (IntakeField.FULL_NAME, re.compile(r"\b(name|spell\w*)\b", re.IGNORECASE)),
    (IntakeField.DATE, re.compile(r"\b(date|day|when)\b", re.IGNORECASE)),
    (IntakeField.LOCATION, re.compile(r"\b(location|where|city|state|place|address)\b", re.IGNORECASE)),
    (IntakeField.INJURIES, re.compile(r"\b(injur\w*)\b", re.IGNORECASE)),
    (IntakeField.TREATMENT, re.compile(r"\b(treat\w*|doctor|hospital)\b", re.IGNORECASE)),
    (IntakeField.INCIDENT, re.compile(r"\b(incident|happened|accident|description)\b", re.IGNORECASE)),
    (IntakeField.CLIENT_TYPE, re.compile(r"\b(client)\b", re.IGNORECASE)),
]


def title_case(text: str) -> str:
    """Collapse whitespace and capitalize the first letter of every word."""
    return " ".join(word[:1].upper() + word[1:] for word in text.split())


def extract_client_type(text: str) -> Optional[str]:
    """Return "existing" or "new" when the caller states which one they are."""
    lowered = (text or "").lower()
    if not lowered.strip():
        return None
    if _NOT_A_CLIENT.search(lowered):
        return "new"
    if _EXISTING.search(lowered):
        return "existing"
    if _NEW.search(lowered):
        return "new"
    return None


def _name_from_tokens(tokens: List[str]) -> Optional[str]:
    kept = []
    for token in tokens:
        if token.lower() in NAME_STOPWORDS:
            break
        kept.append(token)
    if 2 <= len(kept) <= 3 and all(_NAME_TOKEN.match(t) for t in kept):
        return title_case(" ".join(t.lower() for t in kept))
    return None


def extract_full_name(text: str, allow_bare: bool = True) -> Optional[str]:
    """
    Extract a first and last name.

    Args:
        text: Caller utterance
        allow_bare: Accept an utterance that is nothing but two or three name-like
            words ("john smith"); only sensible when a name was just asked for

    Returns:
        Optional[str]: Title-cased name, or None
    """
    if not text or not text.strip():
        return None
    for match in _NAME_INTENT.finditer(text):
        name = _name_from_tokens(match.group(1).split())
        if name:
            return name
    for match in _NAME_CAPITALIZED.finditer(text):
        first, last = match.group(1), match.group(2)
        if first.lower() not in NAME_STOPWORDS and last.lower() not in NAME_STOPWORDS:
            return title_case(f"{first} {last}")
    if allow_bare:
        tokens = re.sub(r"[^a-zA-Z' \-]", " ", text).split()
        if 2 <= len(tokens) <= 3:
            return _name_from_tokens(tokens)
    return None


def extract_phone(text: str) -> Optional[str]:
    """Return "+1" and ten digits for a North American number written with digits."""
    if not text:
        return None
    match = _PHONE.search(text)
    if match:
        candidate = match.group(0)
    elif _DIGITS_ONLY.fullmatch(text.strip()):
        # "555 12 34 567": nothing but digits and separators
        candidate = text
    else:
        return None
    digits = re.sub(r"\D", "", candidate)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def extract_email(text: str) -> Optional[str]:
    """Return an email address, accepting the spoken form "john at gmail dot com"."""
    if not text:
        return None
    match = _EMAIL.search(text)
    if not match:
        spoken = _SPOKEN_DOT.sub(".", _SPOKEN_AT.sub("@", text))
        match = _EMAIL.search(spoken)
    return match.group(0).lower().rstrip(".") if match else None


def extract_date(text: str, today: Optional[datetime.date] = None) -> Optional[str]:
    """
    Extract an incident date.

    Args:
        text: Caller utterance
        today: Reference date for a missing year (defaults to the current date)

    Returns:
        Optional[str]: "MM/DD/YYYY", a lower-cased relative phrase, or None
    """
    if not text:
        return None
    year = (today or datetime.date.today()).year

    match = _DATE_NUMERIC.search(text)
    if match:
        month, day, raw_year = int(match.group(1)), int(match.group(2)), match.group(3)
        if 1 <= month <= 12 and 1 <= day <= 31:
            if raw_year:
                year = int(raw_year) + 2000 if len(raw_year) == 2 else int(raw_year)
            return f"{month:02d}/{day:02d}/{year}"

    match = _DATE_MONTH.search(text)
    if match:
        month = MONTHS[match.group(1).lower()]
        day = int(match.group(2))
        if 1 <= day <= 31:
            if match.group(3):
                year = int(match.group(3))
            return f"{month:02d}/{day:02d}/{year}"

    match = _DATE_RELATIVE.search(text)
    if match:
        return re.sub(r"\s+", " ", match.group(1).lower())
    return None


def _normalize_state(state: Optional[str]) -> Optional[str]:
    if not state:
        return None
    if state.upper() in US_STATE_CODES:
        return state.upper()
    name = title_case(state.lower())
    return name if name in US_STATE_NAMES else None


def _format_place(phrase: str, state: Optional[str]) -> Optional[str]:
    words = []
    for word in phrase.split():
        if word.lower() in LOCATION_STOPWORDS:
            break
        words.append(word)
    place = " ".join(words).strip(" .,'-")
    if not place:
        return None
    place = title_case(place)
    # A state only belongs to the place if the phrase ran up to the comma
    state = _normalize_state(state) if len(words) == len(phrase.split()) else None
    return f"{place}, {state}" if state else place


def extract_location(text: str, allow_bare: bool = False) -> Optional[str]:
    """
    Extract where an incident happened.

    Args:
        text: Caller utterance
        allow_bare: Accept a short answer with no "in"/"at" ("Austin", "Austin TX");
            only sensible when the location was just asked for

    Returns:
        Optional[str]: "City, ST", a title-cased place, or None
    """
    if not text or not text.strip():
        return None
    # Each "in"/"at"/"near" gets its own attempt so "in a crash in Austin" still finds Austin
    for prefix in _LOCATION_PREFIX.finditer(text):
        match = _LOCATION_PHRASE.match(text, prefix.end())
        if not match:
            continue
        phrase = match.group(1).strip()
        if _LOCATION_FALSE_POSITIVE.match(phrase):
            continue
        place = _format_place(phrase, match.group(2))
        if place:
            return place
    if not allow_bare:
        return None

    stripped = text.strip().rstrip(".!")
    match = _LOCATION_CITY_STATE.match(stripped)
    if match and match.group(2).upper() in US_STATE_CODES and _is_place_words(match.group(1).split()):
        return _format_place(match.group(1), match.group(2))
    words = stripped.replace(",", " ").split()
    if 1 <= len(words) <= 4 and _is_place_words(words):
        return _format_place(" ".join(words), None)
    return None


def _is_place_words(words: List[str]) -> bool:
    return all(
        re.match(r"^[A-Za-z.'\-]+$", w) and w.lower() not in NAME_STOPWORDS and w.lower() not in LOCATION_STOPWORDS
        for w in words
    )


def has_incident_vocabulary(text: str) -> bool:
    """True when the utterance uses incident vocabulary."""
    return bool(_INCIDENT_VOCAB.search(text or ""))


def extract_incident(text: str, min_words: int = 5) -> Optional[str]:
    """Accept the utterance verbatim as an incident description if it reads like one."""
    stripped = (text or "").strip()
    if not stripped:
        return None
    if has_incident_vocabulary(stripped) or len(stripped.split()) >= min_words:
        return stripped.rstrip(".")
    return None


def extract_injuries(text: str) -> Optional[str]:
    """Return the injury description, "None" for a denial, or None."""
    stripped = (text or "").strip()
    if not stripped:
        return None
    if re.search(r"\b(no|none|not)\b.*\b(injur\w*|hurt)\b", stripped, re.IGNORECASE):
        return "None"
    if _INJURY_VOCAB.search(stripped):
        return stripped.rstrip(".")
    return None


def extract_treatment(text: str) -> Optional[str]:
    """Return the treatment description, "None" for a denial, or None."""
    stripped = (text or "").strip()
    if not stripped:
        return None
    if re.search(r"\b(no|none|not|haven't|didn't)\b.*\b(treat\w*|doctor|hospital)\b", stripped, re.IGNORECASE):
        return "None"
    if _TREATMENT_VOCAB.search(stripped):
        return stripped.rstrip(".")
    return None


def is_affirmative(text: str) -> bool:
    text = text or ""
    return bool(_AFFIRMATIVE.search(text) or _AFFIRMATIVE_PREDICATE.search(text))


def is_negative(text: str) -> bool:
    return bool(_NEGATIVE.search(text or ""))


def is_correction(text: str) -> bool:
    """True when the caller says something needs fixing."""
    return bool(_CORRECTION.search(text or ""))


def classify_confirmation(text: str) -> Optional[bool]:
    """
    Read a reply to a confirmation question.

    Correction wording wins over everything, then a reply that opens with "no",
    then an affirmative, then any other negative. "yes, no problem" confirms;
    "that's not right" and "no, the correct number is ..." do not.

    Returns:
        Optional[bool]: True for yes, False for no, None when unclear
    """
    if is_correction(text) or _LEADING_NEGATIVE.search(text or ""):
        return False
    if is_affirmative(text):
        return True
    if is_negative(text):
        return False
    return None


def detect_field_hint(text: str) -> Optional[IntakeField]:
    """Guess which field a correction refers to from keywords like "name" or "email"."""
    for field, pattern in _FIELD_HINTS:
        if pattern.search(text or ""):
            return field
    return None


# Extractors tried, in order, against a free-text correction
STRUCTURED_EXTRACTORS: List[Tuple[IntakeField, Callable[[str], Optional[str]]]] = [
    (IntakeField.PHONE, extract_phone),
    (IntakeField.EMAIL, extract_email),
    (IntakeField.DATE, extract_date),
    (IntakeField.LOCATION, extract_location),
    (IntakeField.FULL_NAME, lambda text: extract_full_name(text, allow_bare=False)),
]

# Extractor used when the caller is answering the question for a field
FIELD_EXTRACTORS: Dict[IntakeField, Callable[[str], Optional[str]]] = {
    IntakeField.CLIENT_TYPE: extract_client_type,
    IntakeField.FULL_NAME: extract_full_name,
    IntakeField.PHONE: extract_phone,
    IntakeField.EMAIL: extract_email,
    IntakeField.INCIDENT: extract_incident,
    IntakeField.DATE: extract_date,
    IntakeField.LOCATION: lambda text: extract_location(text, allow_bare=True),
    IntakeField.INJURIES: extract_injuries,
    IntakeField.TREATMENT: extract_treatment,
}

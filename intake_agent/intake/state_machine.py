"""
Deterministic intake dialog state machine.

The machine owns the canonical question order and the authoritative field
record for one call. It consumes caller utterances one at a time, applies the
extractor for the current question, and reports everything it does as typed
events to a single listener:

    AWAIT_CLIENT_TYPE -> AWAIT_NAME -> AWAIT_PHONE -> AWAIT_EMAIL -> AWAIT_INCIDENT
    -> AWAIT_DATE -> AWAIT_LOCATION -> CONFIRM -> DONE

CONFIRM reads everything back. A "no" either corrects a field in place (when the
same utterance already carries a recognizable value) or moves to AWAIT_CORRECTION;
after a correction the caller is asked again in CONFIRM_AFTER_CORRECTION.

Each non-terminal state arms a soft reprompt timer (and optionally a hard nudge),
restarted by every caller utterance. Reprompts are capped per state and per call;
a timer that fires with its cap reached in a state where the caller said nothing
is no-input exhaustion and applies the configured policy:
- skip: leave the field empty and ask the next question
- transfer: finish with partial data and hand the call to a person
- hangup: finish, say goodbye and end the call

An answer the extractor cannot use is a failed attempt: the question is asked
again, and once the attempts run out (or the caller goes quiet after speaking)
the call finishes as "failed_attempts" and goes to a person.

DONE is terminal. teardown() cancels every timer and silences the machine.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.config.settings import RelaySettings
from intake_agent.intake.events import (
    DoneEvent,
    FieldSetEvent,
    IntakeEvent,
    RepromptEvent,
    SayEvent,
    StateEvent,
)
from intake_agent.intake.extractors import (
    FIELD_EXTRACTORS,
    STRUCTURED_EXTRACTORS,
    classify_confirmation,
    detect_field_hint,
    extract_incident,
    extract_injuries,
    extract_treatment,
)
from intake_agent.intake.timers import RepromptTimerSet
from intake_agent.models.intake import (
    CONFIRM_STATES,
    FIELD_STATES,
    QUESTION_ORDER,
    DialogState,
    FieldRecord,
    IntakeField,
)

logger = logging.getLogger(LOGGER_NAME)

S = DialogState

ENTRY_PROMPTS: Dict[DialogState, str] = {
    S.AWAIT_NAME: "Thanks. What is your full name?",
    S.AWAIT_PHONE: "What is the best callback number? Say the digits clearly.",
    S.AWAIT_EMAIL: "What is your email address?",
    S.AWAIT_INCIDENT: "Briefly, what happened? One sentence is fine.",
    S.AWAIT_DATE: "What was the date? Month day and year is fine.",
    S.AWAIT_LOCATION: "Where did it happen? City and state if you know it.",
}

SOFT_REPROMPTS: Dict[DialogState, str] = {
    S.AWAIT_CLIENT_TYPE: "Please say new if you were in an accident, or existing if you're already a client.",
    S.AWAIT_NAME: "Please say your first and last name clearly.",
    S.AWAIT_PHONE: "Please say ten digits for your phone number.",
    S.AWAIT_EMAIL: "Please say your email address, like name at gmail dot com.",
    S.AWAIT_INCIDENT: "Briefly, what happened? One sentence is fine.",
    S.AWAIT_DATE: "Please say the date, like June 5th 2025, or 06/05/2025.",
    S.AWAIT_LOCATION: "Where did it happen? City and state if you know it.",
    S.CONFIRM: "Please say yes if that's correct, or say what needs to be fixed.",
    S.AWAIT_CORRECTION: "Please say the correct information, for example your correct phone number.",
    S.CONFIRM_AFTER_CORRECTION: "Please say yes if everything is correct now, or no if something is still wrong.",
}

HARD_NUDGES: Dict[DialogState, str] = {
    S.AWAIT_CLIENT_TYPE: "Were you in an accident, or are you an existing client?",
    S.AWAIT_NAME: "What is your full name?",
    S.AWAIT_PHONE: "What is the best callback number? Say the digits clearly.",
    S.AWAIT_EMAIL: "What is your email address?",
    S.AWAIT_INCIDENT: "Can you tell me briefly what happened?",
    S.AWAIT_DATE: "What was the date? Month day and year is fine.",
    S.AWAIT_LOCATION: "Where did it happen? City and state if you know it.",
    S.CONFIRM: "Is everything correct?",
    S.AWAIT_CORRECTION: "What information should I correct?",
    S.CONFIRM_AFTER_CORRECTION: "Is everything correct now?",
}

CLARIFY_CONFIRMATION = "Please say 'yes' if everything is correct, or 'no' if something is wrong."
CORRECTION_PROMPT = "Alright, let's correct that. Please say the correct information that needs to be updated."
CORRECTION_RETRY = "I'm sorry, I didn't get that. Please say the information we should correct."
RETRY_PREFIX = "I'm sorry, I didn't catch that."

FIELD_LABELS: Dict[IntakeField, str] = {
    IntakeField.CLIENT_TYPE: "client type",
    IntakeField.FULL_NAME: "name",
    IntakeField.PHONE: "phone number",
    IntakeField.EMAIL: "email address",
    IntakeField.INCIDENT: "description of what happened",
    IntakeField.DATE: "date",
    IntakeField.LOCATION: "location",
    IntakeField.INJURIES: "injuries",
    IntakeField.TREATMENT: "treatment",
}

IntakeListener = Callable[[IntakeEvent], None]

_STRUCTURED_BY_FIELD = dict(STRUCTURED_EXTRACTORS)


def speakable_phone(phone: str) -> str:
    """Render "+15551234567" as "555 123 4567" for read-back."""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return phone
    return f"{digits[:3]} {digits[3:6]} {digits[6:]}"


class IntakeStateMachine:
    """
    Authoritative turn-by-turn intake for one call.

    Args:
        listener: Callable receiving every emitted event, synchronously
        reprompt_ms: Soft reprompt delay after entering a state (0 disables)
        hard_nudge_ms: Hard nudge delay after entering a state (0 disables)
        max_reprompts_per_state: Reprompts allowed in one state
        max_total_reprompts: Reprompts allowed across the whole call
        max_unclear_confirmations: Clarifying reprompts in a confirm state before finishing
        max_correction_attempts: Retries of an unparseable correction before finishing
        max_failed_attempts: Retries of an unusable answer to a question before finishing
        no_input_policy: "skip", "transfer" or "hangup" on no-input exhaustion
        timers: Timer set to use (a fresh one by default)
    """

    def __init__(
        self,
        listener: IntakeListener,
        reprompt_ms: int = 6000,
        hard_nudge_ms: int = 0,
        max_reprompts_per_state: int = 1,
        max_total_reprompts: int = 6,
        max_unclear_confirmations: int = 2,
        max_correction_attempts: int = 1,
        max_failed_attempts: int = 2,
        no_input_policy: str = "transfer",
        timers: Optional[RepromptTimerSet] = None,
    ):
        if no_input_policy not in ("skip", "transfer", "hangup"):
            raise ValueError(f"Unknown no-input policy: {no_input_policy}")
        self._listener = listener
        self.reprompt_ms = reprompt_ms
        self.hard_nudge_ms = hard_nudge_ms
        self.max_reprompts_per_state = max_reprompts_per_state
        self.max_total_reprompts = max_total_reprompts
        self.max_unclear_confirmations = max_unclear_confirmations
        self.max_correction_attempts = max_correction_attempts
        self.max_failed_attempts = max_failed_attempts
        self.no_input_policy = no_input_policy
        self._timers = timers or RepromptTimerSet()

        self.fields = FieldRecord()
        self.state = S.AWAIT_CLIENT_TYPE
        self.state_reprompts = 0
        self.total_reprompts = 0
        self._unclear = 0
        self._correction_attempts = 0
        self._failed_attempts = 0
        self._heard_in_state = False
        self._correction_hint: Optional[IntakeField] = None
        self._started = False
        self._closed = False

    @classmethod
    def from_settings(cls, listener: IntakeListener, settings: RelaySettings) -> "IntakeStateMachine":
        return cls(
            listener,
            reprompt_ms=settings.reprompt_ms,
            hard_nudge_ms=settings.hard_nudge_ms,
            max_reprompts_per_state=settings.max_reprompts_per_state,
            max_total_reprompts=settings.max_total_reprompts,
            max_unclear_confirmations=settings.max_unclear_confirmations,
            max_correction_attempts=settings.max_correction_attempts,
            max_failed_attempts=settings.max_failed_attempts,
            no_input_policy=settings.no_input_policy,
        )

    @property
    def done(self) -> bool:
        return self.state == S.DONE

    def start(self) -> None:
        """Begin listening for the first answer; the greeting already asked the first question."""
        if self._started or self._closed:
            return
        self._started = True
        self._emit(StateEvent(state=self.state))
        self._arm_timers()

    def teardown(self) -> None:
        """Cancel all timers; no event is emitted afterwards."""
        self._closed = True
        self._timers.close()

    # Caller input

    def handle_user_text(self, text: str) -> None:
        """Apply one caller utterance to the current state."""
        if self._closed or self.done:
            return
        utterance = (text or "").strip()
        if not utterance:
            return
        if not self._started:
            self.start()

        state = self.state
        # The caller is talking, so the silence timers start over
        self._timers.cancel_all()
        self._heard_in_state = True

        if state in FIELD_STATES:
            self._handle_answer(utterance)
        elif state == S.CONFIRM:
            self._handle_confirm(utterance)
        elif state == S.AWAIT_CORRECTION:
            self._handle_correction(utterance)
        elif state == S.CONFIRM_AFTER_CORRECTION:
            self._handle_confirm_after_correction(utterance)

        if self.state == state:
            self._arm_timers()

    def _handle_answer(self, utterance: str) -> None:
        field = FIELD_STATES[self.state]
        value = FIELD_EXTRACTORS[field](utterance)
        if value:
            self._set_field(field, value)
            self._advance()
            return

        self._failed_attempts += 1
        logger.debug(f"No {field.value} in utterance at {self.state.value} (attempt {self._failed_attempts})")
        if self._failed_attempts > self.max_failed_attempts:
            self._finish("failed_attempts")
            return
        self._emit(
            RepromptEvent(
                text=f"{RETRY_PREFIX} {SOFT_REPROMPTS[self.state]}",
                state=self.state,
                reason="retry",
                attempt=self._failed_attempts,
            )
        )

    def _handle_confirm(self, utterance: str) -> None:
        verdict = classify_confirmation(utterance)
        if verdict is True:
            self._finish("confirmed")
            return
        # A reply carrying a new value ("no, the number is ...") corrects in place
        corrected = self._find_correction(utterance, structured_only=True)
        if corrected:
            self._set_field(*corrected)
            self._enter(S.CONFIRM_AFTER_CORRECTION)
        elif verdict is False:
            self._correction_hint = detect_field_hint(utterance)
            self._enter(S.AWAIT_CORRECTION)
        else:
            self._unclear_confirmation()

    def _handle_correction(self, utterance: str) -> None:
        corrected = self._find_correction(utterance)
        if corrected:
            self._set_field(*corrected)
            self._enter(S.CONFIRM_AFTER_CORRECTION)
            return
        hint = detect_field_hint(utterance)
        if hint:
            self._correction_hint = hint
        self._correction_attempts += 1
        if self._correction_attempts > self.max_correction_attempts:
            self._finish("unconfirmed")
        else:
            self._emit(
                RepromptEvent(
                    text=CORRECTION_RETRY,
                    state=self.state,
                    reason="retry",
                    attempt=self._correction_attempts,
                )
            )

    def _handle_confirm_after_correction(self, utterance: str) -> None:
        verdict = classify_confirmation(utterance)
        if verdict is True:
            self._finish("confirmed")
        elif verdict is False:
            self._finish("unconfirmed")
        else:
            self._unclear_confirmation()

    def _unclear_confirmation(self) -> None:
        self._unclear += 1
        if self._unclear > self.max_unclear_confirmations:
            self._finish("unconfirmed")
            return
        self._emit(
            RepromptEvent(text=CLARIFY_CONFIRMATION, state=self.state, reason="unclear", attempt=self._unclear)
        )

    def _find_correction(
        self, utterance: str, structured_only: bool = False
    ) -> Optional[Tuple[IntakeField, str]]:
        """
        Work out which field a correction utterance updates.

        A keyword hint ("the date was ...") picks the extractor first; otherwise each
        structured extractor is tried in turn. Free-text fields are only guessed in
        AWAIT_CORRECTION, where the caller was explicitly asked for the fix.
        """
        hint = detect_field_hint(utterance)
        if structured_only:
            extractor = _STRUCTURED_BY_FIELD.get(hint)
        else:
            hint = hint or self._correction_hint
            extractor = FIELD_EXTRACTORS[hint] if hint else None
        if extractor is not None:
            value = extractor(utterance)
            if value:
                return hint, value

        for field, extractor in STRUCTURED_EXTRACTORS:
            if field == hint:
                continue
            value = extractor(utterance)
            if value:
                return field, value

        if structured_only:
            return None
        for field, extractor in (
            (IntakeField.INJURIES, extract_injuries),
            (IntakeField.TREATMENT, extract_treatment),
            (IntakeField.INCIDENT, extract_incident),
        ):
            value = extractor(utterance)
            if value:
                return field, value
        return None

    # Transitions

    def _set_field(self, field: IntakeField, value: str) -> None:
        if self.fields.set(field, value):
            logger.info(f"Intake field set: {field.value}={value}")
            self._emit(FieldSetEvent(field=field, value=value, state=self.state))

    def _advance(self) -> None:
        index = QUESTION_ORDER.index(self.state)
        self._enter(QUESTION_ORDER[index + 1])

    def _enter(self, state: DialogState) -> None:
        previous = self.state
        self._timers.cancel_all()
        self.state = state
        self.state_reprompts = 0
        self._failed_attempts = 0
        self._heard_in_state = False
        if state in CONFIRM_STATES:
            self._unclear = 0
        if state == S.AWAIT_CORRECTION:
            self._correction_attempts = 0
        self._emit(StateEvent(state=state, previous=previous))
        prompt = self._entry_prompt(state)
        if prompt:
            self._emit(SayEvent(text=prompt, state=state))
        self._arm_timers()

    def _finish(self, outcome: str, handoff: str = "transfer") -> None:
        if self.done:
            return
        previous = self.state
        self._timers.cancel_all()
        self.state = S.DONE
        logger.info(f"Intake finished: outcome={outcome}, handoff={handoff}")
        self._emit(StateEvent(state=S.DONE, previous=previous))
        self._emit(
            DoneEvent(
                fields={field.value: self.fields.get(field) for field in IntakeField},
                summary=self.summary(),
                outcome=outcome,
                handoff=handoff,
            )
        )

    def _entry_prompt(self, state: DialogState) -> Optional[str]:
        if state == S.CONFIRM:
            return f"Let me read that back. {self.summary()} Is everything correct?"
        if state == S.AWAIT_CORRECTION:
            if self._correction_hint:
                return f"Alright, let's fix your {FIELD_LABELS[self._correction_hint]}. What should it be?"
            return CORRECTION_PROMPT
        if state == S.CONFIRM_AFTER_CORRECTION:
            return f"Thank you. I've updated that information. {self.summary()} Is everything correct now?"
        return ENTRY_PROMPTS.get(state)

    def summary(self) -> str:
        """Spoken read-back of every collected field."""

        def safe(value: Optional[str]) -> str:
            return value.rstrip(".") if value else "unspecified"

        f = self.fields
        phone = speakable_phone(f.phone) if f.phone else None
        parts = [
            f"Client type {safe(f.client_type)}.",
            f"Name {safe(f.full_name)}.",
            f"Phone {safe(phone)}.",
            f"Email {safe(f.email)}.",
            f"Incident: {safe(f.incident)}.",
            f"Date {safe(f.date)}.",
            f"Location {safe(f.location)}.",
        ]
        if f.injuries:
            parts.append(f"Injuries: {safe(f.injuries)}.")
        if f.treatment:
            parts.append(f"Treatment: {safe(f.treatment)}.")
        return " ".join(parts)

    # Reprompt timers

    def _arm_timers(self) -> None:
        state = self.state
        if self.done or self._closed:
            return
        if self.reprompt_ms > 0:
            self._timers.schedule(self.reprompt_ms, lambda: self._on_timer(state, hard=False))
        if self.hard_nudge_ms > 0:
            self._timers.schedule(self.hard_nudge_ms, lambda: self._on_timer(state, hard=True))

    def _on_timer(self, state: DialogState, hard: bool) -> None:
        if self._closed or self.state != state or self.done:
            return
        if (
            self.state_reprompts >= self.max_reprompts_per_state
            or self.total_reprompts >= self.max_total_reprompts
        ):
            self._no_input_exhausted()
            return
        self.state_reprompts += 1
        self.total_reprompts += 1
        text = HARD_NUDGES[state] if hard else SOFT_REPROMPTS[state]
        self._emit(
            RepromptEvent(
                text=text,
                state=state,
                reason="nudge" if hard else "timeout",
                attempt=self.state_reprompts,
            )
        )
        if not hard:
            self._timers.schedule(self.reprompt_ms, lambda: self._on_timer(state, hard=False))

    def _no_input_exhausted(self) -> None:
        if self._heard_in_state and self.no_input_policy != "skip":
            logger.info(f"Reprompts exhausted at {self.state.value} after unusable answers; handing off")
            self._finish("failed_attempts")
            return
        logger.info(
            f"No input at {self.state.value} after {self.state_reprompts} reprompts "
            f"({self.total_reprompts} this call); applying policy {self.no_input_policy}"
        )
        if self.no_input_policy == "skip":
            if self.state in FIELD_STATES:
                self._advance()
            else:
                self._finish("unconfirmed")
        else:
            self._finish("no_input", handoff=self.no_input_policy)

    def _emit(self, event: IntakeEvent) -> None:
        if self._closed:
            return
        try:
            self._listener(event)
        except Exception as e:
            logger.error(f"Error in intake event listener for {event.kind}: {e}", exc_info=True)

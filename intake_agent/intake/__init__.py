"""
Intake module: the deterministic intake dialog and everything around it.

Key components:
- extractors: Pure functions turning one utterance into a normalized field value
  (client type, name, phone, email, date, location, incident, injuries, treatment)
  plus the yes/no/correction classifiers used at confirmation.
- state_machine: IntakeStateMachine, the authoritative question order, field record,
  confirmation and correction flow, and reprompt policy.
- events: The typed events the state machine emits (field_set, state, say,
  reprompt, done).
- timers: RepromptTimerSet, generation-tagged loop.call_later timers.
- dispatcher: PromptDispatcher, one serialized chain of spoken lines with a bounded
  wait for silence and duplicate suppression.
- shadow: Transcript de-duplication and best-effort shadow extraction.
- controller: IntakeController, wiring machine events to the dispatcher and to
  call control when the intake is done.

Usage examples:
```python
from intake_agent.intake.state_machine import IntakeStateMachine

events = []
machine = IntakeStateMachine(events.append, reprompt_ms=0)
machine.start()
machine.handle_user_text("I was in a car accident")
machine.handle_user_text("My name is Jane Doe")
machine.handle_user_text("555-123-4567")
print(machine.state)              # DialogState.AWAIT_EMAIL
print(machine.fields.phone)       # +15551234567
```
"""

# Intake module initialization

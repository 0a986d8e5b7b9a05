"""
Services module for the collaborators a call uses outside the relay itself.

Key components:
- call_control: TwilioCallControl, which transfers a live call to a person (TwiML
  <Dial>) or hangs it up through the Twilio REST API, off the event loop.
- normalizer: IntakeNormalizer and the default ShadowIntakeNormalizer, which turn
  the shadow field record and transcript log into a validated IntakeRecord after
  the call, plus a mid-call checkpoint().

Usage examples:
```python
from intake_agent.services.call_control import TwilioCallControl
from intake_agent.services.normalizer import ShadowIntakeNormalizer

call_control = TwilioCallControl(account_sid, auth_token, transfer_number="+15550001111")
if not await call_control.transfer("CA123", caller_id="+15551234567"):
    print("transfer failed")

result = await ShadowIntakeNormalizer().normalize(transcripts, shadow_record)
if result.ok:
    print(result.record.model_dump())
```
"""

# Services module initialization

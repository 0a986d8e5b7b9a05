import unittest

from intake_agent.intake.shadow import ShadowExtractor, TranscriptDeduplicator


class TestTranscriptDeduplicator(unittest.TestCase):
    def test_repeat_rejected(self):
        dedupe = TranscriptDeduplicator()

        self.assertTrue(dedupe.accept("hello"))
        self.assertFalse(dedupe.accept("hello"))

    def test_ring_forgets_old_lines(self):
        dedupe = TranscriptDeduplicator(capacity=2)
        dedupe.accept("one")
        dedupe.accept("two")
        dedupe.accept("three")

        self.assertTrue(dedupe.accept("one"))


class TestShadowExtractor(unittest.TestCase):
    def setUp(self):
        self.shadow = ShadowExtractor(log_mode="verbose")

    def test_fills_several_fields_from_one_utterance(self):
        accepted = self.shadow.on_utterance("user", "I was in a car accident yesterday in Austin, TX")

        self.assertTrue(accepted)
        record = self.shadow.record
        self.assertEqual(record.client_type, "new")
        self.assertEqual(record.date, "yesterday")
        self.assertEqual(record.location, "Austin, TX")
        self.assertIsNone(record.incident)

    def test_incident_fallback_when_nothing_else_matched(self):
        self.shadow.on_utterance("user", "I was in a car accident yesterday in Austin, TX")

        self.shadow.on_utterance("user", "a truck ran a red light and hit me")

        self.assertEqual(self.shadow.record.incident, "a truck ran a red light and hit me")

    def test_first_value_wins(self):
        self.shadow.on_utterance("user", "my number is 555-123-4567")
        self.shadow.on_utterance("user", "actually call 555-999-0000")

        self.assertEqual(self.shadow.record.phone, "+15551234567")

    def test_duplicate_utterance_rejected(self):
        self.assertTrue(self.shadow.on_utterance("user", "My name is John Smith"))
        self.assertFalse(self.shadow.on_utterance("user", "My name is John Smith"))

        self.assertEqual(self.shadow.utterances, ["My name is John Smith"])
        self.assertEqual(self.shadow.record.full_name, "John Smith")

    def test_agent_lines_ignored(self):
        self.assertFalse(self.shadow.on_utterance("assistant", "My name is Alexis Smith"))

        self.assertIsNone(self.shadow.record.full_name)
        self.assertEqual(self.shadow.utterances, [])

    def test_blank_utterance_ignored(self):
        self.assertFalse(self.shadow.on_utterance("user", "  "))

    def test_off_mode_still_dedupes_but_does_not_extract(self):
        shadow = ShadowExtractor(log_mode="off")

        self.assertTrue(shadow.on_utterance("user", "My name is John Smith"))
        self.assertFalse(shadow.on_utterance("user", "My name is John Smith"))

        self.assertFalse(shadow.enabled)
        self.assertIsNone(shadow.record.full_name)

import random
import unittest

from intake_agent.bot.audio_buffer import FrameBuffer, PrerollQueue


class TestFrameBuffer(unittest.TestCase):
    def test_partial_chunk_stays_buffered(self):
        buffer = FrameBuffer(640)

        frames = list(buffer.push(b"\x00" * 600))

        self.assertEqual(frames, [])
        self.assertEqual(len(buffer), 600)

    def test_chunks_regrouped_into_fixed_frames(self):
        buffer = FrameBuffer(4)

        self.assertEqual(list(buffer.push(b"abc")), [])
        self.assertEqual(list(buffer.push(b"defghij")), [b"abcd", b"efgh"])
        self.assertEqual(len(buffer), 2)
        self.assertEqual(list(buffer.push(b"kl")), [b"ijkl"])

    def test_unconsumed_frames_yielded_by_next_push(self):
        buffer = FrameBuffer(2)

        buffer.push(b"aabb")
        self.assertEqual(list(buffer.push(b"c")), [b"aa", b"bb"])

    def test_any_chunking_yields_exact_frames_and_tail(self):
        rng = random.Random(20250605)
        for frame_size in (160, 640):
            for _ in range(50):
                stream = bytes(rng.randrange(256) for _ in range(rng.randrange(0, 5000)))
                cuts = sorted(rng.sample(range(len(stream) + 1), min(len(stream) + 1, rng.randrange(1, 40))))
                chunks = [stream[a:b] for a, b in zip([0] + cuts, cuts + [len(stream)])]
                with self.subTest(frame_size=frame_size, size=len(stream), chunks=len(chunks)):
                    buffer = FrameBuffer(frame_size)

                    frames = [frame for chunk in chunks for frame in buffer.push(chunk)]

                    self.assertTrue(all(len(frame) == frame_size for frame in frames))
                    self.assertEqual(len(frames), len(stream) // frame_size)
                    self.assertEqual(len(buffer), len(stream) % frame_size)
                    self.assertEqual(b"".join(frames), stream[: len(frames) * frame_size])

    def test_clear(self):
        buffer = FrameBuffer(4)
        buffer.push(b"ab")

        buffer.clear()

        self.assertEqual(len(buffer), 0)

    def test_invalid_frame_size(self):
        with self.assertRaises(ValueError):
            FrameBuffer(0)


class TestPrerollQueue(unittest.TestCase):
    def test_drain_returns_frames_in_order(self):
        queue = PrerollQueue(3)
        queue.push(b"1")
        queue.push(b"2")

        self.assertEqual(queue.drain(), [b"1", b"2"])
        self.assertEqual(len(queue), 0)

    def test_overflow_drops_oldest(self):
        queue = PrerollQueue(2)
        for frame in (b"1", b"2", b"3", b"4"):
            queue.push(frame)

        self.assertEqual(queue.dropped, 2)
        self.assertEqual(queue.drain(), [b"3", b"4"])

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            PrerollQueue(0)

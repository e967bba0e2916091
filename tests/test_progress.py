import queue
import sys
import tempfile
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ciscoreset.console.context import (
    EOF_SENTINEL,
    ConsoleTranscript,
    ProgressSink,
    RunCancelled,
    RunContext,
    RunDeadline,
)


class ProgressSinkTests(unittest.TestCase):
    def test_full_queue_drops_oldest_and_keeps_sentinel(self) -> None:
        channel: queue.Queue[str] = queue.Queue(maxsize=2)
        sink = ProgressSink(channel=channel)

        for index in range(5):
            sink.emit(f"step {index}")
        sink.complete()

        delivered = [channel.get_nowait(), channel.get_nowait()]
        self.assertTrue(delivered[0].endswith("step 4"))
        self.assertEqual(EOF_SENTINEL, delivered[1])
        self.assertEqual(4, sink.dropped)
        self.assertEqual(EOF_SENTINEL, sink.history[-1])

    def test_messages_are_timestamped_except_sentinel(self) -> None:
        received: list[str] = []
        sink = ProgressSink(callback=received.append)

        sink.emit("Successfully reset!")
        sink.complete()

        self.assertRegex(received[0], r"^<\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}> Successfully reset!$")
        self.assertEqual(EOF_SENTINEL, received[1])
        self.assertEqual(["Successfully reset!", EOF_SENTINEL], sink.history)

    def test_warning_is_prefixed(self) -> None:
        sink = ProgressSink()
        sink.warning("SSH username not specified.")
        self.assertEqual(["WARNING: SSH username not specified."], sink.history)
        self.assertNotIn(EOF_SENTINEL, sink.history)


class RunDeadlineTests(unittest.TestCase):
    def test_without_limit_never_expires(self) -> None:
        deadline = RunDeadline()
        self.assertIsNone(deadline.remaining())
        deadline.check()

    def test_expires_with_clock(self) -> None:
        now = [100.0]
        deadline = RunDeadline(10, clock=lambda: now[0])
        self.assertEqual(10.0, deadline.remaining())
        now[0] = 111.0
        self.assertEqual(0.0, deadline.remaining())
        with self.assertRaises(RunCancelled):
            deadline.check()

    def test_cancel(self) -> None:
        deadline = RunDeadline()
        deadline.cancel()
        self.assertTrue(deadline.cancelled)
        with self.assertRaises(RunCancelled):
            deadline.check()


class TranscriptTests(unittest.TestCase):
    def test_dump_writes_lines_in_order(self) -> None:
        transcript = ConsoleTranscript()
        transcript.append(b"rommon 1 >\r\n")
        transcript.append(b"\x00")
        transcript.append(b"Router>\r\n")

        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "dumps" / "console.txt"
            written = transcript.dump(target)
            self.assertEqual(b"rommon 1 >\r\n\x00Router>\r\n", target.read_bytes())
        self.assertEqual(22, written)

    def test_context_flush_reports_bytes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "console.txt"
            context = RunContext(transport=None, dump_path=target)
            context.transcript.append(b"switch:\r\n")

            self.assertEqual(9, context.flush_transcript())
            self.assertEqual([f"Wrote 9 bytes to {target}"], context.progress.history)

    def test_flush_without_destination_is_noop(self) -> None:
        context = RunContext(transport=None)
        context.transcript.append(b"switch:\r\n")
        self.assertIsNone(context.flush_transcript())
        self.assertEqual([], context.progress.history)


if __name__ == "__main__":
    unittest.main()

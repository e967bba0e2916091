import itertools
import sys
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from ciscoreset.console.context import RunCancelled, RunDeadline
from ciscoreset.console.expect import (
    CRLF,
    CTRL_C,
    answer,
    any_of,
    format_command,
    on_silence,
    prefix,
    substring,
    suffix,
)
from ciscoreset.console.transport import TransportError

from console_fakes import ScriptedConsole, make_context, make_engine


class FormatCommandTests(unittest.TestCase):
    def test_appends_newline(self) -> None:
        self.assertEqual(b"enable\n", format_command("enable"))

    def test_blank_command_becomes_crlf(self) -> None:
        self.assertEqual(b"\r\n", format_command(""))


class PredicateTests(unittest.TestCase):
    def test_builders_fold_case_of_the_target(self) -> None:
        self.assertTrue(suffix("Router#")("router#"))
        self.assertTrue(prefix("ROMMON 2 >")("rommon 2 > reset"))
        self.assertTrue(substring("[yes/no]")("save? [yes/no]:"))
        self.assertFalse(suffix("router#")("router# show"))

    def test_any_of(self) -> None:
        predicate = any_of(suffix("switch:"), substring("password-recovery"))
        self.assertTrue(predicate("the password-recovery mechanism is enabled."))
        self.assertTrue(predicate("switch:"))
        self.assertFalse(predicate("xmodem file system is available."))

    def test_answer_picks_reply_from_line(self) -> None:
        retransmit = answer("unknown cmd", "flash_init")
        self.assertEqual(b"flash_init\n", retransmit("unknown cmd: flash_init"))
        self.assertEqual(CRLF, retransmit("initializing flash..."))

    def test_on_silence_only_answers_empty_reads(self) -> None:
        retransmit = on_silence(b"dir flash:\n")
        self.assertEqual(b"dir flash:\n", retransmit(""))
        self.assertIsNone(retransmit("switch:"))

    def test_answer_can_defer_to_on_silence(self) -> None:
        retransmit = answer("unknown cmd", "flash_init", otherwise=on_silence())
        self.assertEqual(b"flash_init\n", retransmit("unknown cmd: flash_init"))
        self.assertEqual(CRLF, retransmit(""))
        self.assertIsNone(retransmit("switch:"))


class AwaitConditionTests(unittest.TestCase):
    def test_retransmits_once_per_mismatch(self) -> None:
        console = ScriptedConsole(["Initializing Hardware ...", "Self decompressing the image", "Router>"])
        context = make_context(console)
        sleeps: list[float] = []
        engine = make_engine(context, sleeps)

        line = engine.await_condition(suffix("router>"), CRLF, poll_interval=0.5)

        self.assertEqual("router>", line)
        self.assertEqual([CRLF, CRLF], console.written)
        self.assertEqual([0.5, 0.5], sleeps)
        self.assertEqual(3, len(context.transcript))

    def test_no_retransmit_when_none(self) -> None:
        console = ScriptedConsole(["", "boot noise", "Press RETURN to get started!"])
        engine = make_engine(make_context(console))

        engine.await_condition(suffix("press return to get started!"), None, poll_interval=0)

        self.assertEqual([], console.written)

    def test_syslog_line_never_matches(self) -> None:
        console = ScriptedConsole(
            [
                "*Nov  6 21:15:29.667: %SYS-5-CONFIG_I: Configured from console by console",
                "Router#",
            ]
        )
        engine = make_engine(make_context(console))

        line = engine.await_condition(any_of(substring("console"), suffix("router#")), CRLF, poll_interval=0)

        self.assertEqual("router#", line)
        self.assertEqual([CRLF], console.written)

    def test_callable_retransmit_receives_line(self) -> None:
        console = ScriptedConsole(["Would you like to enter the initial configuration dialog? [yes/no]:", "Router>"])
        engine = make_engine(make_context(console))

        engine.await_condition(suffix("router>"), answer("initial configuration dialog", "no"), poll_interval=0)

        self.assertEqual([b"no\n"], console.written)

    def test_every_read_reaches_transcript(self) -> None:
        console = ScriptedConsole([b"\x00garbage\r\n", b"", b"rommon 1 >\r\n"])
        context = make_context(console)
        engine = make_engine(context)

        engine.await_condition(suffix("rommon 1 >"), CTRL_C, poll_interval=0)

        self.assertEqual([b"\x00garbage\r\n", b"", b"rommon 1 >\r\n"], context.transcript.lines)
        self.assertEqual(2, console.count(CTRL_C))

    def test_transport_error_ends_wait(self) -> None:
        console = ScriptedConsole(silence_limit=3)
        engine = make_engine(make_context(console))

        with self.assertRaises(TransportError):
            engine.await_condition(suffix("router>"), CRLF, poll_interval=0)

    def test_deadline_stops_endless_wait(self) -> None:
        ticks = itertools.count()
        deadline = RunDeadline(5, clock=lambda: next(ticks))
        console = ScriptedConsole(silence_limit=10_000)
        engine = make_engine(make_context(console, deadline=deadline))

        with self.assertRaises(RunCancelled):
            engine.await_condition(suffix("router>"), CRLF, poll_interval=0)

        self.assertLess(console.reads, 10)

    def test_cancel_stops_wait(self) -> None:
        deadline = RunDeadline()
        console = ScriptedConsole(responder=lambda text: deadline.cancel() or [], silence_limit=10_000)
        engine = make_engine(make_context(console, deadline=deadline))

        with self.assertRaises(RunCancelled):
            engine.await_condition(suffix("router>"), CRLF, poll_interval=0)

        self.assertEqual(1, console.reads)


class CollectAndDrainTests(unittest.TestCase):
    def test_collect_keeps_every_line_with_case(self) -> None:
        console = ScriptedConsole(["Directory of flash:/", "  5  -rwx  616  VLAN.dat", "switch:"])
        engine = make_engine(make_context(console))

        lines = engine.collect_until(suffix("switch:"), poll_interval=0)

        self.assertEqual(["Directory of flash:/", "5  -rwx  616  VLAN.dat", "switch:"], lines)

    def test_drain_stops_on_empty_read(self) -> None:
        console = ScriptedConsole(["one", "two"])
        engine = make_engine(make_context(console))

        self.assertEqual(2, len(engine.drain(10)))
        self.assertEqual(3, console.reads)

    def test_exchange_reads_one_line(self) -> None:
        console = ScriptedConsole(responder=lambda text: ["Router(config)#", "extra"])
        engine = make_engine(make_context(console))

        self.assertEqual("router(config)#", engine.exchange("hostname Router"))
        self.assertEqual([b"hostname Router\n"], console.written)
        self.assertEqual(1, len(console.pending))


if __name__ == "__main__":
    unittest.main()

"""Wait-for-output primitive shared by every device state machine.

The engine reads one line at a time, normalizes it and tests it against a
predicate. On a mismatch it optionally retransmits something (a blank line,
Ctrl-C, or bytes chosen from the line just read), sleeps for the poll
interval and reads again. Only a transport error or the run deadline ends an
unanswered wait.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Union

from ciscoreset.console.context import RunContext
from ciscoreset.console.syslog import is_syslog
from ciscoreset.core.normalize import clean_line, normalize_line

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
CTRL_C = b"\x03"

DEFAULT_BUFFER_SIZE = 500
LISTING_BUFFER_SIZE = 16384
DEFAULT_POLL_INTERVAL = 1.0

Predicate = Callable[[str], bool]
Retransmit = Union[bytes, Callable[[str], Union[bytes, None]], None]


def format_command(command: str) -> bytes:
    """Terminate a command the way the console expects; blank becomes CRLF."""

    if command == "":
        command = "\r"
    return f"{command}\n".encode("utf-8")


def suffix(text: str) -> Predicate:
    target = text.lower()
    return lambda line: line.endswith(target)


def prefix(text: str) -> Predicate:
    target = text.lower()
    return lambda line: line.startswith(target)


def substring(text: str) -> Predicate:
    target = text.lower()
    return lambda line: target in line


def any_of(*predicates: Predicate) -> Predicate:
    return lambda line: any(predicate(line) for predicate in predicates)


def on_silence(data: bytes = CRLF) -> Callable[[str], bytes | None]:
    """Retransmit ``data`` only after a read that returned nothing."""

    return lambda line: None if line else data


def answer(when: str, reply: str, otherwise: Retransmit = CRLF) -> Callable[[str], bytes | None]:
    """Retransmit ``reply`` when the mismatched line contains ``when``.

    Any other line gets ``otherwise``, which may itself depend on the line.
    """

    trigger = when.lower()
    response = format_command(reply)

    def respond(line: str) -> bytes | None:
        if trigger in line:
            return response
        return otherwise(line) if callable(otherwise) else otherwise

    return respond


class ExpectEngine:
    """Drive a console session one line at a time."""

    def __init__(
        self,
        context: RunContext,
        *,
        normalizer: Callable[[bytes], str] = normalize_line,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.context = context
        self.normalizer = normalizer
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.sent: list[bytes] = []

    @property
    def transport(self):
        return self.context.transport

    def send_raw(self, data: bytes) -> None:
        self.context.deadline.check()
        logger.debug("to_device=%r", data, extra=self.context.log_extra)
        self.transport.write(data)
        self.sent.append(data)

    def send(self, command: str) -> None:
        self.send_raw(format_command(command))

    def set_read_timeout(self, seconds: float) -> None:
        self.transport.set_read_timeout(seconds)

    def read_line(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> bytes:
        self.context.deadline.check()
        raw = self.transport.read_line(buffer_size)
        self.context.transcript.append(raw)
        logger.debug("from_device=%r", raw, extra=self.context.log_extra)
        return raw

    def _retransmit(self, on_mismatch: Retransmit, line: str) -> None:
        if on_mismatch is None:
            return
        data = on_mismatch(line) if callable(on_mismatch) else on_mismatch
        if data:
            self.send_raw(data)

    def _pause(self, poll_interval: float | None) -> None:
        interval = self.poll_interval if poll_interval is None else poll_interval
        if interval > 0:
            self.sleep(interval)

    def await_condition(
        self,
        predicate: Predicate,
        on_mismatch: Retransmit = None,
        *,
        poll_interval: float | None = None,
        read_timeout: float | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        ignore_syslog: bool = True,
    ) -> str:
        """Read until ``predicate`` accepts a normalized line and return that line.

        Log noise never satisfies the predicate when ``ignore_syslog`` is set;
        it only extends the loop, since more output may be queued behind it.
        """

        if read_timeout is not None:
            self.set_read_timeout(read_timeout)

        while True:
            line = self.normalizer(self.read_line(buffer_size))
            noise = ignore_syslog and is_syslog(line)
            if not noise and predicate(line):
                return line
            self._retransmit(on_mismatch, line)
            self._pause(poll_interval)

    def collect_until(
        self,
        predicate: Predicate,
        on_mismatch: Retransmit = CRLF,
        *,
        poll_interval: float | None = None,
        buffer_size: int = LISTING_BUFFER_SIZE,
    ) -> list[str]:
        """Like ``await_condition`` but keep every line, including the final one.

        Lines are returned cleaned but not case-folded.
        """

        collected: list[str] = []
        while True:
            raw = self.read_line(buffer_size)
            collected.append(clean_line(raw))
            line = self.normalizer(raw)
            if predicate(line):
                return collected
            self._retransmit(on_mismatch, line)
            self._pause(poll_interval)

    def command(
        self,
        command: str,
        predicate: Predicate,
        on_mismatch: Retransmit = CRLF,
        *,
        poll_interval: float = 0,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> str:
        """Send ``command`` and wait for the reply that satisfies ``predicate``."""

        self.send(command)
        return self.await_condition(
            predicate, on_mismatch, poll_interval=poll_interval, buffer_size=buffer_size
        )

    def exchange(self, command: str, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
        """Best-effort: send ``command`` and read a single reply line."""

        self.send(command)
        return self.normalizer(self.read_line(buffer_size))

    def drain(self, max_lines: int, buffer_size: int = DEFAULT_BUFFER_SIZE) -> list[bytes]:
        """Read up to ``max_lines`` lines, stopping at the first empty read."""

        drained: list[bytes] = []
        for _ in range(max_lines):
            raw = self.read_line(buffer_size)
            if not raw:
                break
            drained.append(raw)
        return drained

"""Per-run state shared by the engine and the device state machines.

Nothing here is process-global: every run builds its own transcript,
progress sink and deadline, so two runs on two ports never share state.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

EOF_SENTINEL = "---EOF---"
PROGRESS_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("ciscoreset")


class RunCancelled(RuntimeError):
    """Raised when a run passes its deadline or is cancelled by the caller."""


class ConsoleTranscript:
    """Ordered, append-only copy of every raw line read during a run."""

    def __init__(self) -> None:
        self._lines: list[bytes] = []

    def append(self, raw: bytes) -> None:
        self._lines.append(bytes(raw))

    @property
    def lines(self) -> list[bytes]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def dump(self, path: Path) -> int:
        """Write the transcript verbatim to ``path`` and return the byte count."""

        path.parent.mkdir(parents=True, exist_ok=True)
        payload = b"".join(self._lines)
        path.write_bytes(payload)
        return len(payload)


class ProgressSink:
    """Outbound channel for human-readable progress.

    Messages go to the logger and, when provided, to a bounded queue and/or a
    callback. The queue is fed with ``put_nowait``; when it is full the oldest
    message is discarded so a stalled reader never blocks the device session
    and the completion sentinel always gets through.
    """

    def __init__(
        self,
        channel: queue.Queue[str] | None = None,
        callback: Callable[[str], None] | None = None,
        log_extra: dict[str, Any] | None = None,
    ) -> None:
        self.channel = channel
        self.callback = callback
        self.log_extra = log_extra or {}
        self.history: list[str] = []
        self.dropped = 0

    def emit(self, message: str) -> None:
        self.history.append(message)
        if message != EOF_SENTINEL:
            logger.info("%s", message, extra=self.log_extra)

        stamped = message
        if message != EOF_SENTINEL:
            stamped = f"<{datetime.now().strftime(PROGRESS_TIME_FORMAT)}> {message}"

        if self.callback is not None:
            self.callback(stamped)
        if self.channel is not None:
            self._offer(stamped)

    def warning(self, message: str) -> None:
        logger.warning("%s", message, extra=self.log_extra)
        self.emit(f"WARNING: {message}")

    def complete(self) -> None:
        self.emit(EOF_SENTINEL)

    def _offer(self, message: str) -> None:
        assert self.channel is not None
        while True:
            try:
                self.channel.put_nowait(message)
                return
            except queue.Full:
                try:
                    self.channel.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass


class RunDeadline:
    """Optional wall-clock budget for a run, plus a thread-safe cancel switch."""

    def __init__(self, seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds if seconds else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        if self.cancelled:
            raise RunCancelled("Run cancelled by caller")
        if self.expired():
            raise RunCancelled("Run deadline exceeded")


@dataclass(slots=True)
class RunContext:
    """Everything one FSM invocation owns."""

    transport: Any
    progress: ProgressSink = field(default_factory=ProgressSink)
    transcript: ConsoleTranscript = field(default_factory=ConsoleTranscript)
    deadline: RunDeadline = field(default_factory=RunDeadline)
    run_id: str = "-"
    dump_path: Path | None = None

    @property
    def log_extra(self) -> dict[str, Any]:
        return {"port": getattr(self.transport, "port", "-"), "run_id": self.run_id}

    def flush_transcript(self) -> int | None:
        """Dump the transcript when a destination is configured."""

        if self.dump_path is None:
            return None
        written = self.transcript.dump(self.dump_path)
        self.progress.emit(f"Wrote {written} bytes to {self.dump_path}")
        return written

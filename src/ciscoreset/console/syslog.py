"""Recognize asynchronous IOS log messages on the console stream."""

from __future__ import annotations

import re

from ciscoreset.core.normalize import normalize_line

# *Nov  6 19:24:47.888: %IOSXE-3-PLATFORM: ...
# 000045: .Nov  6 2024 19:24:47 UTC: %LINK-3-UPDOWN: ...
_SYSLOG_PATTERN = re.compile(
    r"(?:\d+:\s*)?"
    r"[*.]?[a-z]{3}\s+\d{1,2}\s+(?:\d{4}\s+)?"
    r"\d{1,2}:\d{2}:\d{2}(?:\.\d{1,6})?"
    r"(?:\s+[a-z]{2,5})?:\s*"
    r"%[a-z0-9_]+(?:-[a-z0-9_]+)*-\d-[a-z0-9_]+:",
    re.IGNORECASE,
)


def is_syslog(line: bytes | str) -> bool:
    """Return True when ``line`` is device log noise rather than a command reply."""

    return _SYSLOG_PATTERN.search(normalize_line(line)) is not None

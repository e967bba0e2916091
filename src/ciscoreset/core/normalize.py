"""Normalization helpers for raw console lines."""

from __future__ import annotations


def trim_null(raw: bytes) -> bytes:
    """Drop the NUL padding some consoles emit while idle."""

    return raw.replace(b"\x00", b"")


def clean_line(raw: bytes | str) -> str:
    """Decode a console line, dropping NUL padding and surrounding whitespace.

    Case is preserved, which matters for file names read back from flash.
    """

    if isinstance(raw, bytes):
        text = trim_null(raw).decode("utf-8", errors="ignore")
    else:
        text = raw.replace("\x00", "")
    return text.strip()


def normalize_line(raw: bytes | str) -> str:
    """Normalize a console line for matching.

    - strip NUL bytes
    - trim leading/trailing whitespace (including CR/LF)
    - case-fold
    """

    return clean_line(raw).lower()

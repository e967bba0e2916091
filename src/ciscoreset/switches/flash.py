"""Pick the flash files that hold switch configuration."""

from __future__ import annotations

from typing import Iterable

from ciscoreset.core.normalize import clean_line

CONFIG_MARKERS: tuple[str, ...] = ("config", "vlan")


def parse_files_to_delete(listing: Iterable[bytes | str], markers: Iterable[str] = CONFIG_MARKERS) -> list[str]:
    """Return file names from a ``dir flash:`` listing that should be erased.

    Only lines with more than one whitespace-separated token are entries; the
    name is the last column. Names are kept in listing order, without
    duplicates, and with their original case.
    """

    lowered_markers = tuple(marker.lower() for marker in markers)
    files: list[str] = []
    for raw in listing:
        tokens = clean_line(raw).split()
        if len(tokens) <= 1:
            continue

        name = tokens[-1]
        if any(marker in name.lower() for marker in lowered_markers) and name not in files:
            files.append(name)
    return files

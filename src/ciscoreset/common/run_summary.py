"""Helpers for building and persisting machine-readable run summaries."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class BackupResultData:
    """What happened to the optional configuration backup."""

    requested: bool
    performed: bool = False
    built_in_server: bool = False
    destination: str | None = None
    files: list[str] = field(default_factory=list)
    size_bytes: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "requested": self.requested,
            "performed": self.performed,
            "built_in_server": self.built_in_server,
            "destination": self.destination,
            "files": list(self.files),
            "size_bytes": self.size_bytes,
        }

    def record_outcome(self, coordinator, succeeded: bool) -> None:
        """Fill in the result from the backup coordinator once the run is over.

        Without the built-in server nothing is verified locally, so a
        successful run that kept the backup enabled counts as performed.
        """

        received = coordinator.received_bytes
        if received is None:
            self.performed = coordinator.enabled and succeeded
        else:
            self.performed = received > 0
        self.size_bytes = received
        if self.performed:
            self.files = list(coordinator.expected_files or [coordinator.filename])


@dataclass(slots=True)
class RunSummaryBuilder:
    """Accumulate per-run data and store it as JSON."""

    run_id: str
    timestamp: str
    command: str
    port: str
    settings: str
    status: str = "running"
    error: str | None = None
    transcript_lines: int = 0
    dump_path: str | None = None
    progress_dropped: int = 0
    backup: BackupResultData | None = None
    deleted_files: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    def finish(self, status: str, error: str | None = None) -> None:
        self.status = status
        self.error = error

    def build(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "command": self.command,
            "port": self.port,
            "settings": self.settings,
            "status": self.status,
            "error": self.error,
            "transcript": {"lines": self.transcript_lines, "dump_path": self.dump_path},
            "progress": {"messages": len(self.messages), "dropped": self.progress_dropped},
            "backup": self.backup.to_dict() if self.backup else None,
            "deleted_files": list(self.deleted_files),
        }

    def save(self, backup_dir: Path, logger) -> Path:
        summary_dir = backup_dir / "summary"
        summary_dir.mkdir(parents=True, exist_ok=True)

        target = summary_dir / f"run_{self.run_id}.json"
        target.write_text(json.dumps(self.build(), indent=2, ensure_ascii=False), encoding="utf-8")

        logger.info("run_summary_json_saved path=%s", target)
        return target

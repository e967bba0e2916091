"""Logging setup for ciscoreset runs.

Settings come from the ``logging`` section of ``config/local.yml``, read
through the same loader as the rest of the local settings; ``--debug`` wins
over ``logging.level``. Every record carries the serial port and run id of
the session that produced it. Transcripts log raw IOS commands, so secrets
are masked before any handler writes them.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from ciscoreset.core.storage import PROJECT_ROOT, check_writable_directory, load_local_config

DEFAULT_DIRECTORY = Path("/var/log/ciscoreset")
DEFAULT_FILENAME = "ciscoreset.log"
DEFAULT_LEVEL = logging.INFO
FALLBACK_DIRECTORY = PROJECT_ROOT / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)s | port=%(port)s run=%(run_id)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Fields every record must have for LOG_FORMAT; runs fill them through ``extra``.
CONTEXT_FIELDS = ("port", "run_id")


@dataclass(slots=True)
class LoggingConfig:
    directory: Path = DEFAULT_DIRECTORY
    filename: str = DEFAULT_FILENAME
    level: int = DEFAULT_LEVEL

    @classmethod
    def from_section(cls, section: Mapping[str, Any], cli_level: int | None = None) -> "LoggingConfig":
        """Build the settings from a ``logging`` mapping; unknown values fall back to defaults."""

        directory = section.get("directory")
        filename = section.get("filename")
        level = cli_level if cli_level is not None else _parse_level(section.get("level"))
        return cls(
            directory=Path(str(directory)).expanduser() if directory else DEFAULT_DIRECTORY,
            filename=str(filename) if filename else DEFAULT_FILENAME,
            level=level,
        )


def _parse_level(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_LEVEL
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = logging.getLevelName(value.strip().upper())
        if isinstance(level, int):
            return level
    return DEFAULT_LEVEL


class PortContextFilter(logging.Filter):
    """Give records logged outside a run a ``-`` port and run id."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not getattr(record, name, None):
                setattr(record, name, "-")
        return True


class SecretScrubberFilter(logging.Filter):
    """Mask passwords and secrets in formatted messages."""

    SECRET_PATTERN = re.compile(r"(password|secret|token)=([^\s]+)", re.IGNORECASE)
    # IOS commands as they appear in transcripts: "enable secret X",
    # "username U password X" and a bare "password X" at the start of a command.
    COMMAND_PATTERN = re.compile(
        r"((?:\busername\s+\S+\s+|\benable\s+|['\"])(?:password|secret)\s+)([^\s'\"\\]+)",
        re.IGNORECASE,
    )

    def scrub(self, message: str) -> str:
        cleaned = self.SECRET_PATTERN.sub(r"\1=***", message)
        return self.COMMAND_PATTERN.sub(r"\1***", cleaned)

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True

        cleaned = self.scrub(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return True


def _choose_directory(config: LoggingConfig) -> Path:
    ok, reason = check_writable_directory(config.directory)
    if ok:
        return config.directory

    ok, fallback_reason = check_writable_directory(FALLBACK_DIRECTORY)
    if not ok:
        raise OSError(
            f"Unable to write logs to {config.directory} ({reason}) or {FALLBACK_DIRECTORY} ({fallback_reason})."
        )
    return FALLBACK_DIRECTORY


def _build_handlers(log_path: Path, level: int) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    # Progress already reaches the terminal through the CLI.
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    handlers: list[logging.Handler] = [file_handler, stream_handler]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(PortContextFilter())
        handler.addFilter(SecretScrubberFilter())
    return handlers


def setup_logging(
    config_path: str | Path | None = "config/local.yml", cli_level: int | None = None
) -> logging.Logger:
    """Install the file and stderr handlers on the root logger.

    Returns the ``ciscoreset`` logger. A missing or unreadable local.yml
    leaves the defaults in place; an unwritable log directory falls back to
    ``logs/`` under the project root.
    """

    local_config = load_local_config(config_path)
    section = local_config.get("logging") if local_config else None
    config = LoggingConfig.from_section(section if isinstance(section, Mapping) else {}, cli_level)

    log_directory = _choose_directory(config)
    log_path = log_directory / config.filename

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.level)
    for handler in _build_handlers(log_path, config.level):
        root_logger.addHandler(handler)

    logger = logging.getLogger("ciscoreset")
    logger.setLevel(config.level)

    if local_config is None:
        logger.info(
            "local config %s unavailable, logging with defaults directory=%s level=%s",
            config_path,
            config.directory,
            logging.getLevelName(config.level),
        )
    if log_directory != config.directory:
        logger.warning("log directory %s is not writable, using %s", config.directory, log_directory)

    logger.info("logging initialized path=%s level=%s", log_path, logging.getLevelName(config.level))
    return logger

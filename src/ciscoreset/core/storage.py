"""Storage helpers: local.yml, the backup directory and transcript dumps."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[3]
FALLBACK_BACKUP_DIR = PROJECT_ROOT / "backup"
DEFAULT_LOCAL_CONFIG = PROJECT_ROOT / "config" / "local.yml"
DUMP_ENVIRONMENT_VARIABLE = "DumpConsoleOutput"


def load_local_config(
    config_path: str | Path | None = None, logger: logging.Logger | None = None
) -> Mapping[str, Any] | None:
    """Load local.yml if it exists and return the mapping."""

    config_file = Path(config_path) if config_path else DEFAULT_LOCAL_CONFIG
    if not config_file.is_absolute():
        config_file = PROJECT_ROOT / config_file

    if logger:
        logger.debug("loading local config from %s", config_file)

    if not config_file.exists():
        if logger:
            logger.debug("local config not found at %s", config_file)
        return None

    try:
        with config_file.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        if logger:
            logger.warning("unable to read local config file=%s reason=\"%s\"", config_file, exc)
        return None

    return data if isinstance(data, Mapping) else None


def check_writable_directory(path: Path) -> tuple[bool, str | None]:
    """Try to create and write to the directory, returning success and reason."""

    try:
        path.mkdir(parents=True, exist_ok=True)
        test_file = path / ".write-test"
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True, None
    except OSError as exc:
        return False, str(exc)


def _extract_local_path(local_cfg: Mapping[str, Any] | None, section: str, key: str) -> Path | None:
    """Return ``section.key`` from the local.yml mapping as a project-relative path."""

    if not isinstance(local_cfg, Mapping):
        return None

    section_value = local_cfg.get(section)
    if not isinstance(section_value, Mapping):
        return None

    raw_value = section_value.get(key)
    if not raw_value:
        return None

    candidate = Path(str(raw_value)).expanduser()
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def resolve_backup_dir(
    cli_backup_dir: str | Path | None, local_cfg: Mapping[str, Any] | None, logger: logging.Logger
) -> Path:
    """Determine the backup directory with priority: CLI > local.yml > fallback.

    The directory doubles as the root of the built-in TFTP server and holds
    the run summaries.
    """

    candidates: list[tuple[str, Path]] = []

    if cli_backup_dir:
        candidates.append(("cli", Path(cli_backup_dir).expanduser()))

    local_candidate = _extract_local_path(local_cfg, "backup", "directory")
    if local_candidate:
        candidates.append(("local_yml", local_candidate))

    for source, candidate in candidates:
        ok, reason = check_writable_directory(candidate)
        if ok:
            logger.info("backup_dir source=%s path=%s", source, candidate)
            return candidate

        logger.warning(
            'backup_dir source=%s path=%s fallback=%s reason="%s"',
            source,
            candidate,
            FALLBACK_BACKUP_DIR,
            reason or "unavailable",
        )

    ok, fallback_reason = check_writable_directory(FALLBACK_BACKUP_DIR)
    if not ok:
        logger.error(
            'backup_dir fallback=%s reason="%s"', FALLBACK_BACKUP_DIR, fallback_reason or "unavailable"
        )
        raise OSError(f"Unable to use fallback backup directory: {FALLBACK_BACKUP_DIR}")

    if not candidates:
        logger.info(
            'backup_dir source=fallback path=%s reason="%s"', FALLBACK_BACKUP_DIR, "not provided"
        )
    else:
        logger.info("backup_dir source=fallback path=%s", FALLBACK_BACKUP_DIR)

    return FALLBACK_BACKUP_DIR


def resolve_dump_path(
    cli_dump_path: str | Path | None,
    local_cfg: Mapping[str, Any] | None,
    logger: logging.Logger,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """Where to write the console transcript, or None to skip the dump.

    Priority: CLI > local.yml ``console.dump_path`` > ``DumpConsoleOutput``
    environment variable.
    """

    environ = os.environ if environ is None else environ

    if cli_dump_path:
        path, source = Path(cli_dump_path).expanduser(), "cli"
    else:
        local_candidate = _extract_local_path(local_cfg, "console", "dump_path")
        env_value = environ.get(DUMP_ENVIRONMENT_VARIABLE)
        if local_candidate:
            path, source = local_candidate, "local_yml"
        elif env_value:
            path, source = Path(env_value).expanduser(), "environment"
        else:
            logger.debug("console dump disabled")
            return None

    logger.debug("console dump source=%s path=%s", source, path)
    return path

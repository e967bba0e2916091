#!/usr/bin/env python3
"""Entry point for ciscoreset."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Mapping

# Ensure src/ is on sys.path for local imports when running as a script
ROOT_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from serial.tools import list_ports  # noqa: E402

from ciscoreset.common.backup import BackupCoordinator  # noqa: E402
from ciscoreset.common.run_summary import BackupResultData, RunSummaryBuilder  # noqa: E402
from ciscoreset.console.context import ProgressSink, RunCancelled, RunContext, RunDeadline  # noqa: E402
from ciscoreset.console.transport import TransportError, TransportSession  # noqa: E402
from ciscoreset.core.config import (  # noqa: E402
    SerialSettingsError,
    TemplateValidationError,
    load_defaults_template,
    load_switch_template,
    resolve_deadline,
    resolve_port_settings,
)
from ciscoreset.core.logging import setup_logging  # noqa: E402
from ciscoreset.core.models import BackupParameters, run_timestamp  # noqa: E402
from ciscoreset.core.storage import load_local_config, resolve_backup_dir, resolve_dump_path  # noqa: E402
from ciscoreset.routers.defaults import RouterDefaultsFSM  # noqa: E402
from ciscoreset.routers.reset import RouterResetFSM  # noqa: E402
from ciscoreset.switches.defaults import SwitchDefaultsFSM  # noqa: E402
from ciscoreset.switches.reset import SwitchResetFSM  # noqa: E402

DEVICE_COMMANDS = ("router-reset", "router-defaults", "switch-reset", "switch-defaults")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""

    parser = argparse.ArgumentParser(
        description=(
            "Reset Cisco routers and switches over the serial console. "
            "Use this CLI to wipe a device, optionally back up its config first, "
            "and apply a baseline configuration."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=ROOT_DIR / "config" / "local.yml",
        help="Path to the local settings file (YAML)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting. Overrides config/local.yml logging.level.",
    )

    device_parent = argparse.ArgumentParser(add_help=False)
    device_parent.add_argument("--port", required=True, help="Serial port, e.g. /dev/ttyUSB0 or COM3")
    device_parent.add_argument("--baud", type=int, default=None, help="Baud rate (default 9600)")
    device_parent.add_argument("--data-bits", type=int, choices=(5, 6, 7, 8), default=None)
    device_parent.add_argument(
        "--parity", choices=("none", "even", "odd", "mark", "space"), default=None
    )
    device_parent.add_argument("--stop-bits", type=float, choices=(1, 1.5, 2), default=None)
    device_parent.add_argument(
        "--dump-console",
        type=Path,
        default=None,
        help="Write the raw console transcript to this file when the run ends.",
    )
    device_parent.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Abort the run after this many seconds. Overrides config/local.yml run.deadline_seconds.",
    )
    device_parent.add_argument(
        "--backup-dir",
        type=Path,
        default=None,
        help="Directory for TFTP uploads and run summaries. Overrides config/local.yml.",
    )

    backup_parent = argparse.ArgumentParser(add_help=False)
    backup_parent.add_argument(
        "--backup", action="store_true", help="Copy the configuration over TFTP instead of discarding it"
    )
    backup_parent.add_argument(
        "--builtin-tftp", action="store_true", help="Receive the backup with the built-in TFTP server"
    )
    backup_parent.add_argument(
        "--source-ip", default="", help="Address for the device's backup interface (empty for DHCP)"
    )
    backup_parent.add_argument("--subnet-mask", default="", help="Mask for --source-ip")
    backup_parent.add_argument("--destination", default="", help="TFTP server address")
    backup_parent.add_argument("--prefix", default="", help="Backup filename prefix (default: run timestamp)")

    subcommands = parser.add_subparsers(dest="command", title="commands")

    subcommands.add_parser("ports", help="List the serial ports available on this machine")

    subcommands.add_parser(
        "router-reset",
        help="Factory reset a router through ROMMON",
        parents=[device_parent, backup_parent],
    )

    router_defaults = subcommands.add_parser(
        "router-defaults", help="Apply a defaults template to a router", parents=[device_parent]
    )
    router_defaults.add_argument("template", type=Path, help="Defaults template (YAML or JSON)")

    subcommands.add_parser(
        "switch-reset",
        help="Factory reset a switch through the boot loader",
        parents=[device_parent, backup_parent],
    )

    switch_defaults = subcommands.add_parser(
        "switch-defaults", help="Apply a defaults template to a switch", parents=[device_parent]
    )
    switch_defaults.add_argument("template", type=Path, help="Switch defaults template (YAML or JSON)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = setup_logging(args.config, cli_level=logging.DEBUG if args.debug else None)
    logger.info("ciscoreset run started.")

    if args.command is None:
        parser.print_help()
        logger.info("ciscoreset run finished.")
        return 0

    if args.command == "ports":
        exit_code = _list_ports(logger)
    elif args.command in DEVICE_COMMANDS:
        exit_code = _run_device_command(args, logger)
    else:
        parser.error(f"Unknown command: {args.command}")
        return 2

    logger.info("ciscoreset run finished.")
    return exit_code


def _list_ports(logger: logging.Logger) -> int:
    ports = sorted(list_ports.comports(), key=lambda info: info.device)
    logger.debug("serial ports found=%d", len(ports))
    if not ports:
        print("No serial ports found.")
        return 0

    for info in ports:
        print(f"{info.device}\t{info.description or '-'}")
    return 0


def _print_progress(message: str) -> None:
    print(message, flush=True)


def _acknowledge_release() -> None:
    input("Press enter once you've released it")


def _backup_parameters(args: argparse.Namespace) -> BackupParameters:
    return BackupParameters(
        enabled=bool(getattr(args, "backup", False)),
        use_built_in_server=bool(getattr(args, "builtin_tftp", False)),
        source_ip=getattr(args, "source_ip", ""),
        subnet_mask=getattr(args, "subnet_mask", ""),
        destination_host=getattr(args, "destination", ""),
        filename_prefix=getattr(args, "prefix", ""),
    )


def _run_device_command(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Open the console, run the selected state machine and record the outcome."""

    log_extra = {"port": args.port}
    local_config = load_local_config(args.config, logger)
    if local_config is not None:
        logger.debug("local config loaded from %s", args.config, extra=log_extra)

    cli_serial: Mapping[str, Any] = {
        "baud": args.baud,
        "data_bits": args.data_bits,
        "parity": args.parity,
        "stop_bits": args.stop_bits,
    }
    try:
        settings = resolve_port_settings(cli_serial, local_config, logger)
        deadline_seconds = resolve_deadline(args.deadline, local_config, logger)
    except (SerialSettingsError, ValueError) as exc:
        logger.error("%s", exc, extra=log_extra)
        return 2

    template: Any = None
    loaders = {"router-defaults": load_defaults_template, "switch-defaults": load_switch_template}
    if args.command in loaders:
        try:
            template = loaders[args.command](args.template, logger)
        except (FileNotFoundError, TemplateValidationError) as exc:
            logger.error("%s", exc, extra=log_extra)
            return 2

    backup_dir = resolve_backup_dir(args.backup_dir, local_config, logger)
    dump_path = resolve_dump_path(args.dump_console, local_config, logger)

    run_id = settings.run_id(args.port)
    log_extra = {"port": args.port, "run_id": run_id}
    summary = RunSummaryBuilder(
        run_id=run_id,
        timestamp=run_timestamp(),
        command=args.command,
        port=args.port,
        settings=settings.label(),
        dump_path=str(dump_path) if dump_path else None,
    )

    transport = TransportSession(args.port, settings)
    progress = ProgressSink(callback=_print_progress, log_extra=log_extra)
    context = RunContext(
        transport=transport,
        progress=progress,
        deadline=RunDeadline(deadline_seconds),
        run_id=run_id,
        dump_path=dump_path,
    )

    logger.info("Beginning %s run_id=%s settings=%s", args.command, run_id, settings.label(), extra=log_extra)
    exit_code = 1
    fsm: Any = None
    try:
        with transport:
            if args.command in ("router-reset", "switch-reset"):
                backup = _backup_parameters(args)
                coordinator = BackupCoordinator(backup, backup_dir, progress, logger, log_extra)
                summary.backup = BackupResultData(
                    requested=backup.enabled,
                    built_in_server=backup.use_built_in_server,
                    destination=backup.destination_host or None,
                )
                if args.command == "router-reset":
                    fsm = RouterResetFSM(context, backup, backup_dir, coordinator=coordinator)
                else:
                    fsm = SwitchResetFSM(
                        context,
                        acknowledge=_acknowledge_release,
                        backup=backup,
                        backup_root=backup_dir,
                        coordinator=coordinator,
                    )
            elif args.command == "router-defaults":
                fsm = RouterDefaultsFSM(context, template)
            else:
                fsm = SwitchDefaultsFSM(context, template)
            fsm.run()
        summary.finish("success")
        exit_code = 0
    except TransportError as exc:
        logger.exception("Console session failed.", extra=log_extra)
        summary.finish("failed", str(exc))
    except RunCancelled as exc:
        logger.error("Run aborted: %s", exc, extra=log_extra)
        summary.finish("cancelled", str(exc))
    except TemplateValidationError as exc:
        logger.error("%s", exc, extra=log_extra)
        summary.finish("failed", str(exc))
        exit_code = 2
    except KeyboardInterrupt:
        logger.warning("Run interrupted by operator.", extra=log_extra)
        summary.finish("cancelled", "interrupted")
        exit_code = 130

    _complete_summary(summary, context, fsm)
    try:
        summary.save(backup_dir, logger)
    except OSError:
        logger.exception("Unable to save the run summary.", extra=log_extra)

    return exit_code


def _complete_summary(summary: RunSummaryBuilder, context: RunContext, fsm: Any) -> None:
    summary.transcript_lines = len(context.transcript)
    summary.progress_dropped = context.progress.dropped
    summary.messages = list(context.progress.history)

    if isinstance(fsm, SwitchResetFSM):
        summary.deleted_files = list(fsm.deleted)

    if isinstance(fsm, (RouterResetFSM, SwitchResetFSM)) and summary.backup is not None:
        summary.backup.record_outcome(fsm.coordinator, summary.status == "success")


if __name__ == "__main__":
    raise SystemExit(main())

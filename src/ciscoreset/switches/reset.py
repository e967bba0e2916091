"""Factory reset for Catalyst switches through the boot loader.

The operator holds MODE while powering the switch on. Depending on whether
password recovery is enabled the boot loader either drops to ``switch:`` (we
delete the configuration files from flash ourselves) or offers to restore the
default configuration (we accept and boot).

With a backup requested the configuration files are renamed instead of
deleted. Once IOS is up, vlan 1 gets an address and every renamed file is
copied to the TFTP destination.

The boot loader prints a fresh ``switch:`` for every blank line it receives,
so prompts pile up while we wait for the banner. Each command therefore waits
for its own echo (``switch: <command>``) before looking for the prompt that
follows it.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from ciscoreset.common.backup import DEFAULT_STOP_TIMEOUT, BackupCoordinator
from ciscoreset.console.context import RunContext
from ciscoreset.console.expect import (
    CRLF,
    LISTING_BUFFER_SIZE,
    ExpectEngine,
    answer,
    any_of,
    format_command,
    on_silence,
    substring,
    suffix,
)
from ciscoreset.core.models import BackupParameters, run_timestamp
from ciscoreset.switches.flash import parse_files_to_delete

logger = logging.getLogger(__name__)

RECOVERY_PROMPT = "switch:"
PASSWORD_RECOVERY = "password-recovery"
PASSWORD_RECOVERY_DISABLED = "password-recovery mechanism is disabled"
PASSWORD_RECOVERY_TRIGGERED = "password-recovery mechanism has been triggered"
PASSWORD_RECOVERY_ENABLED = "password-recovery mechanism is enabled"
YES_NO_PROMPT = "(y/n)?"
UNKNOWN_COMMAND = "unknown cmd"
SETUP_DIALOG = "would you like to enter the initial configuration dialog? [yes/no]:"
USER_PROMPT = "switch>"
EXEC_PROMPT = "switch#"
CONFIG_PROMPT = "switch(config)#"
INTERFACE_PROMPT = "switch(config-if)#"
BACKUP_INTERFACE = "vlan 1"

BANNER_TIMEOUT = 1.0
LISTING_TIMEOUT = 15.0
STARTUP_TIMEOUT = 60.0
COMMAND_TIMEOUT = 5.0
POLL_INTERVAL = 1.0
DRAIN_LINES = 10


class RecoveryMode(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class SwitchResetState(str, Enum):
    WAIT_RECOVERY_BANNER = "wait_recovery_banner"
    BRANCH = "branch"
    BACKUP_DECISION = "backup_decision"
    FLASH_INIT = "flash_init"
    DIR_LIST = "dir_list"
    SELECT_FILES = "select_files"
    DELETE_FILES = "delete_files"
    MOVE_FILES = "move_files"
    RESTART = "restart"
    BACKUP_COPY = "backup_copy"
    DONE = "done"


def classify_recovery(line: str) -> RecoveryMode | None:
    """Tell the two boot loader paths apart from a normalized line."""

    if PASSWORD_RECOVERY_DISABLED in line or PASSWORD_RECOVERY_TRIGGERED in line:
        return RecoveryMode.DISABLED
    if PASSWORD_RECOVERY_ENABLED in line or RECOVERY_PROMPT in line:
        return RecoveryMode.ENABLED
    return None


def backup_filename(prefix: str, name: str) -> str:
    return f"{prefix}-{name}"


def _echo(command: str) -> str:
    return f"{RECOVERY_PROMPT} {command}"


class SwitchResetFSM:
    def __init__(
        self,
        context: RunContext,
        acknowledge: Callable[[], None] | None = None,
        engine: ExpectEngine | None = None,
        backup: BackupParameters | None = None,
        backup_root: Path = Path("backup"),
        coordinator: BackupCoordinator | None = None,
    ) -> None:
        self.context = context
        self.progress = context.progress
        self.engine = engine or ExpectEngine(context)
        self.acknowledge = acknowledge
        self.backup = backup or BackupParameters()
        if not self.backup.filename_prefix:
            self.backup.filename_prefix = run_timestamp()
        self.coordinator = coordinator or BackupCoordinator(
            self.backup, backup_root, self.progress, log_extra=context.log_extra
        )
        self.state = SwitchResetState.WAIT_RECOVERY_BANNER
        self.visited: list[SwitchResetState] = []
        self.mode: RecoveryMode | None = None
        self.deleted: list[str] = []
        self.moved: list[str] = []

    def _enter(self, state: SwitchResetState) -> None:
        self.state = state
        self.visited.append(state)
        logger.debug("switch reset state=%s", state.value, extra=self.context.log_extra)

    def run(self) -> None:
        try:
            line = self._wait_for_banner()
            self.mode = self._branch(line)
            if self.mode is RecoveryMode.DISABLED:
                self._restore_defaults()
            else:
                self._decide_backup()
                self._initialize_flash()
                listing = self._list_flash()
                files = self._select_files(listing)
                if self.backup.enabled:
                    self._move_files(files)
                else:
                    self._delete_files(files)
                self._restart()
                if self.backup.enabled and self.moved:
                    self._copy_backups()
        finally:
            self._release()

        self._enter(SwitchResetState.DONE)
        self.progress.emit("Successfully reset!")
        self.progress.complete()

    def _wait_for_banner(self) -> str:
        self._enter(SwitchResetState.WAIT_RECOVERY_BANNER)
        self.progress.emit("Trigger password recovery by following these steps:")
        self.progress.emit("1. Unplug the switch")
        self.progress.emit("2. Hold the MODE button on the switch.")
        self.progress.emit("3. Plug the switch in while holding the button")
        self.progress.emit("4. When you are told, release the MODE button")

        self.engine.set_read_timeout(BANNER_TIMEOUT)
        line = self.engine.await_condition(
            any_of(substring(PASSWORD_RECOVERY), substring(RECOVERY_PROMPT)),
            CRLF,
            poll_interval=POLL_INTERVAL,
        )

        self.progress.emit("Release the mode button now")
        if self.acknowledge is not None:
            self.acknowledge()
        return line

    def _branch(self, line: str) -> RecoveryMode:
        self._enter(SwitchResetState.BRANCH)
        self.progress.emit("Checking to see if password recovery is enabled")

        mode = classify_recovery(line)
        if mode is None:
            line = self.engine.await_condition(
                lambda candidate: classify_recovery(candidate) is not None,
                CRLF,
                poll_interval=POLL_INTERVAL,
            )
            mode = classify_recovery(line)
        assert mode is not None

        if mode is RecoveryMode.DISABLED:
            self.progress.emit("Password recovery was disabled")
        else:
            self.progress.emit("Password recovery was enabled")
            if not line.endswith(RECOVERY_PROMPT):
                self.engine.await_condition(suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL)
            self.progress.emit("Entered recovery console")
        return mode

    def _restore_defaults(self) -> None:
        if self.backup.enabled:
            self.progress.warning("Password recovery is disabled, so the configuration cannot be backed up")
            self.backup.enabled = False

        # The boot loader asks once and waits; a blank line would answer "no".
        self.engine.await_condition(substring(YES_NO_PROMPT), None, poll_interval=POLL_INTERVAL)
        self.progress.emit("Restoring the default configuration")
        self.engine.send("y")

        self.engine.await_condition(substring(RECOVERY_PROMPT), CRLF, poll_interval=POLL_INTERVAL)
        self.progress.emit("Booting the switch")
        self.engine.send("boot")
        self.engine.drain(DRAIN_LINES)

    def _decide_backup(self) -> None:
        self._enter(SwitchResetState.BACKUP_DECISION)
        if self.coordinator.validate():
            self.progress.emit(
                f"Backing up the configuration files to {self.backup.destination_host} "
                f"with the prefix {self.backup.filename_prefix}"
            )

    def _bootloader_command(self, command: str, resend: bool = False) -> None:
        """Send a boot loader command and wait for its echo after the prompt.

        Only idempotent commands are resent when the console stays silent.
        """

        retransmit = on_silence(format_command(command)) if resend else None
        self.engine.command(command, substring(_echo(command)), retransmit, poll_interval=POLL_INTERVAL)

    def _initialize_flash(self) -> None:
        self._enter(SwitchResetState.FLASH_INIT)
        self.progress.emit("Initializing flash")
        self.engine.set_read_timeout(BANNER_TIMEOUT)

        resend = format_command("flash_init")
        self.engine.command(
            "flash_init",
            substring(_echo("flash_init")),
            answer(UNKNOWN_COMMAND, "flash_init", otherwise=on_silence(resend)),
            poll_interval=POLL_INTERVAL,
        )
        self.engine.await_condition(suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL)

    def _list_flash(self) -> list[str]:
        self._enter(SwitchResetState.DIR_LIST)
        self.progress.emit("Flash has been initialized, now listing directory")
        self.engine.set_read_timeout(LISTING_TIMEOUT)
        self._bootloader_command("dir flash:", resend=True)
        listing = self.engine.collect_until(
            suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL, buffer_size=LISTING_BUFFER_SIZE
        )
        self.engine.set_read_timeout(BANNER_TIMEOUT)
        return listing

    def _select_files(self, listing: list[str]) -> list[str]:
        self._enter(SwitchResetState.SELECT_FILES)
        action = "move" if self.backup.enabled else "delete"
        self.progress.emit(f"Parsing files to {action}...")
        files = parse_files_to_delete(listing)
        logger.debug("flash files selected=%s", ",".join(files) or "-", extra=self.context.log_extra)
        return files

    def _delete_files(self, files: list[str]) -> None:
        self._enter(SwitchResetState.DELETE_FILES)
        if not files:
            self.progress.emit("Switch has been reset already.")
            return

        self.progress.emit("Deleting files")
        for name in files:
            self.progress.emit(f"Deleting {name}")
            self._bootloader_command(f"del flash:{name}")
            self.engine.await_condition(substring(YES_NO_PROMPT), None, poll_interval=POLL_INTERVAL)
            self.engine.command("y", suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL)
            self.deleted.append(name)
        self.progress.emit("Switch has been reset")

    def _move_files(self, files: list[str]) -> None:
        self._enter(SwitchResetState.MOVE_FILES)
        if not files:
            self.progress.emit("Switch has been reset already.")
            return

        self.progress.emit("Moving files")
        prefix = self.backup.filename_prefix
        for name in files:
            target = backup_filename(prefix, name)
            self.progress.emit(f"Moving file {name} to {target}")
            self._bootloader_command(f"rename flash:{name} flash:{target}")
            self.engine.await_condition(suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL)
            self.moved.append(name)
        self.progress.emit("Switch has been reset")

    def _restart(self) -> None:
        self._enter(SwitchResetState.RESTART)
        self.progress.emit("Restarting the switch")
        self.engine.await_condition(suffix(RECOVERY_PROMPT), on_silence(), poll_interval=POLL_INTERVAL)
        self._bootloader_command("reset")
        self.engine.await_condition(substring(YES_NO_PROMPT), None, poll_interval=POLL_INTERVAL)
        self.engine.send("y")
        if not (self.backup.enabled and self.moved):
            self.engine.drain(DRAIN_LINES)

    def _copy_backups(self) -> None:
        self._enter(SwitchResetState.BACKUP_COPY)
        prefix = self.backup.filename_prefix
        destination = self.backup.destination_host
        self.coordinator.expected_files = [backup_filename(prefix, name) for name in self.moved]
        self.coordinator.start()

        self.progress.emit("Waiting for switch to start up to back up config")
        self.engine.set_read_timeout(STARTUP_TIMEOUT)
        self.engine.await_condition(
            substring(USER_PROMPT), answer(SETUP_DIALOG, "no", otherwise=on_silence()), poll_interval=POLL_INTERVAL
        )
        self.progress.emit("We have booted up now")

        self.engine.set_read_timeout(COMMAND_TIMEOUT)
        self.progress.emit("Entering privileged exec.")
        self.engine.command("enable", suffix(EXEC_PROMPT))

        self.progress.emit(f"Assigning {BACKUP_INTERFACE} an IP address")
        self.engine.command("conf t", suffix(CONFIG_PROMPT))
        self.engine.command(f"inter {BACKUP_INTERFACE}", suffix(INTERFACE_PROMPT))
        self.engine.command(f"ip address {self.backup.address_argument()}", suffix(INTERFACE_PROMPT))
        self.engine.command("end", suffix(EXEC_PROMPT))

        self.progress.emit(f"Copying {len(self.moved)} files to {destination}.")
        for name in self.moved:
            filename = backup_filename(prefix, name)
            self.progress.emit(f"Backing up file {filename} to {destination}.")
            # Blank lines accept the host and filename the copy dialog proposes.
            self.engine.command(f"copy flash:{filename} tftp://{destination}/{filename}", suffix(EXEC_PROMPT))

    def _release(self) -> None:
        if self.coordinator.running:
            remaining = self.context.deadline.remaining()
            timeout = DEFAULT_STOP_TIMEOUT if remaining is None else min(remaining, DEFAULT_STOP_TIMEOUT)
            self.coordinator.stop(timeout)
        self.context.flush_transcript()

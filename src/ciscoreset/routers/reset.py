"""Factory reset for Cisco routers through ROMMON.

The router is power-cycled by the operator, interrupted into ROMMON with
Ctrl-C, booted with the configuration register set to skip the
startup-config, and then asked to restore the register, optionally back up
the old startup-config over TFTP, erase NVRAM and reload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ciscoreset.common.backup import DEFAULT_STOP_TIMEOUT, BackupCoordinator, router_config_filename
from ciscoreset.console.context import RunContext
from ciscoreset.console.expect import CRLF, CTRL_C, ExpectEngine, Predicate, any_of, prefix, substring, suffix
from ciscoreset.core.models import BackupParameters, run_timestamp

logger = logging.getLogger(__name__)

SHELL_PROMPT = "router"
ROMMON_PROMPT = "rommon"
RECOVERY_REGISTER = "0x2142"
NORMAL_REGISTER = "0x2102"
SHELL_CUE = "press return to get started!"
SAVE_PROMPT = "[yes/no]:"
CONFIRMATION_PROMPT = "[confirm]"
CONFIG_BANNER = "enter configuration commands, one per line.  end with cntl/z."
BACKUP_INTERFACE = "g0/0/0"
BUFFER_SIZE = 4096

ROMMON_TIMEOUT = 2.0
BOOT_TIMEOUT = 10.0
COMMAND_TIMEOUT = 5.0


class RouterResetState(str, Enum):
    SEEK_ROMMON = "seek_rommon"
    ROMMON_CONFIGURE = "rommon_configure"
    BOOT_WAIT = "boot_wait"
    SHELL_READY = "shell_ready"
    BACKUP_DECISION = "backup_decision"
    COMMAND_LOOP = "command_loop"
    RELOAD_CONFIRM = "reload_confirm"
    DONE = "done"


@dataclass(slots=True)
class RouterCommand:
    """A command for the exec shell and the prompt that proves it finished."""

    command: str
    expect: Predicate
    note: str | None = None


class RouterResetFSM:
    def __init__(
        self,
        context: RunContext,
        backup: BackupParameters | None = None,
        backup_root: Path = Path("backup"),
        engine: ExpectEngine | None = None,
        coordinator: BackupCoordinator | None = None,
    ) -> None:
        self.context = context
        self.progress = context.progress
        self.engine = engine or ExpectEngine(context)
        self.backup = backup or BackupParameters()
        if not self.backup.filename_prefix:
            self.backup.filename_prefix = run_timestamp()
        self.coordinator = coordinator or BackupCoordinator(
            self.backup, backup_root, self.progress, log_extra=context.log_extra
        )
        self.state = RouterResetState.SEEK_ROMMON
        self.visited: list[RouterResetState] = []

    def _enter(self, state: RouterResetState) -> None:
        self.state = state
        self.visited.append(state)
        logger.debug("router reset state=%s", state.value, extra=self.context.log_extra)

    def run(self) -> None:
        try:
            self._seek_rommon()
            self._configure_rommon()
            self._wait_for_boot()
            self._wait_for_shell()
            self._decide_backup()
            self._run_commands(self.build_commands())
            self._confirm_reload()
        finally:
            self._release()

        self._enter(RouterResetState.DONE)
        self.progress.emit("Successfully reset!")
        self.progress.complete()

    def _seek_rommon(self) -> None:
        self._enter(RouterResetState.SEEK_ROMMON)
        self.progress.emit("Trigger the recovery sequence by following these steps:")
        self.progress.emit("1. Turn off the router")
        self.progress.emit("2. After waiting for the lights to shut off, turn the router back on")
        self.progress.emit("Sending ^C until we get into ROMMON...")

        self.engine.set_read_timeout(ROMMON_TIMEOUT)
        self.engine.await_condition(
            suffix(f"{ROMMON_PROMPT} 1 >"), CTRL_C, poll_interval=0, buffer_size=BUFFER_SIZE
        )

    def _configure_rommon(self) -> None:
        self._enter(RouterResetState.ROMMON_CONFIGURE)
        self.progress.emit(f"We've entered ROMMON, setting the register to {RECOVERY_REGISTER}.")

        # ROMMON numbers its prompt; the echo of the N-th command starts with "rommon N >".
        for number, command in enumerate((f"confreg {RECOVERY_REGISTER}", "reset"), start=1):
            self.engine.command(
                command, prefix(f"{ROMMON_PROMPT} {number} >"), CRLF, buffer_size=BUFFER_SIZE
            )

    def _wait_for_boot(self) -> None:
        self._enter(RouterResetState.BOOT_WAIT)
        self.progress.emit("We've finished with ROMMON, going back into the regular console")

        self.engine.set_read_timeout(BOOT_TIMEOUT)
        self.engine.send_raw(CRLF)
        self.engine.await_condition(suffix(SHELL_CUE), None, poll_interval=0, buffer_size=BUFFER_SIZE * 2)

    def _wait_for_shell(self) -> None:
        self._enter(RouterResetState.SHELL_READY)
        self.engine.await_condition(
            suffix(f"{SHELL_PROMPT}>"), CRLF, poll_interval=0, buffer_size=BUFFER_SIZE * 2
        )
        self.progress.emit("We've made it into the regular console")

    def _decide_backup(self) -> None:
        self._enter(RouterResetState.BACKUP_DECISION)
        if self.coordinator.validate():
            self.progress.emit(
                f"Backing up the startup-config to {self.backup.destination_host} as {self.coordinator.filename}"
            )
            self.coordinator.start()

    def build_commands(self) -> list[RouterCommand]:
        exec_prompt = suffix(f"{SHELL_PROMPT}#")
        config_prompt = suffix(f"{SHELL_PROMPT}(config)#")
        interface_prompt = suffix(f"{SHELL_PROMPT}(config-if)#")

        commands = [
            RouterCommand("enable", exec_prompt, "Entering privileged exec"),
            RouterCommand("conf t", any_of(config_prompt, substring(CONFIG_BANNER)), "Entering global configuration mode"),
            RouterCommand(f"config-register {NORMAL_REGISTER}", config_prompt, "Setting our register back to normal"),
        ]

        if self.backup.enabled:
            commands += [
                RouterCommand(f"inter {BACKUP_INTERFACE}", interface_prompt, "Setting an IP address to back up the config"),
                RouterCommand(f"ip addr {self.backup.address_argument()}", interface_prompt),
                RouterCommand("no shutdown", interface_prompt),
            ]

        commands.append(RouterCommand("end", exec_prompt, "Finished configuring our console"))

        if self.backup.enabled:
            filename = router_config_filename(self.backup.filename_prefix)
            commands.append(
                RouterCommand(
                    f"copy startup-config tftp://{self.backup.destination_host}/{filename}",
                    exec_prompt,
                    f"Backing up the config to {self.backup.destination_host}",
                )
            )

        commands += [
            RouterCommand("erase nvram:", exec_prompt, "Erasing the router's config"),
            RouterCommand("", exec_prompt),
        ]
        return commands

    def _run_commands(self, commands: list[RouterCommand]) -> None:
        self._enter(RouterResetState.COMMAND_LOOP)
        self.engine.set_read_timeout(COMMAND_TIMEOUT)
        for step in commands:
            if step.note:
                self.progress.emit(step.note)
            self.engine.command(step.command, step.expect, CRLF, buffer_size=BUFFER_SIZE)

    def _confirm_reload(self) -> None:
        self._enter(RouterResetState.RELOAD_CONFIRM)
        self.progress.emit("Restarting the router")
        self.engine.command("reload", suffix(SAVE_PROMPT), CRLF, buffer_size=BUFFER_SIZE)
        self.engine.command("yes", suffix(CONFIRMATION_PROMPT), CRLF, buffer_size=BUFFER_SIZE)
        self.engine.send("")

    def _release(self) -> None:
        if self.coordinator.running:
            remaining = self.context.deadline.remaining()
            timeout = DEFAULT_STOP_TIMEOUT if remaining is None else min(remaining, DEFAULT_STOP_TIMEOUT)
            self.coordinator.stop(timeout)
        self.context.flush_transcript()

"""Shared steps for applying a defaults template over the console.

Routers and switches boot into the same IOS setup dialog and configure
lines and SSH the same way; the device-specific sections live in the
subclasses under ``routers`` and ``switches``.
"""

from __future__ import annotations

import logging

from ciscoreset.console.context import RunContext
from ciscoreset.console.expect import CRLF, ExpectEngine, answer, on_silence, substring, suffix
from ciscoreset.core.config import MAX_LINE_NUMBER, validate_template
from ciscoreset.core.models import LineConfig

logger = logging.getLogger(__name__)

SETUP_DIALOG = "would you like to enter the initial configuration dialog? [yes/no]:"

STARTUP_TIMEOUT = 60.0
COMMAND_TIMEOUT = 1.0
KEY_GENERATION_TIMEOUT = 10.0

MIN_KEY_BITS = 360
DEFAULT_KEY_BITS = 512
MAX_KEY_BITS = 2048


def clamp_key_bits(bits: int) -> int:
    """Keep the RSA modulus inside what IOS 12.2 accepts."""

    if bits <= 0:
        return DEFAULT_KEY_BITS
    if bits < MIN_KEY_BITS:
        return MIN_KEY_BITS
    if bits > MAX_KEY_BITS:
        return MAX_KEY_BITS
    return bits


class ConsoleDefaultsFSM:
    """Template runner: setup dialog, ``conf t``, device sections, ``end``.

    Subclasses set ``default_hostname``, ``device_name`` and ``max_line`` and
    implement ``configure``.
    """

    default_hostname = "Router"
    device_name = "router"
    max_line = MAX_LINE_NUMBER

    def __init__(self, context: RunContext, template, engine: ExpectEngine | None = None) -> None:
        self.context = context
        self.progress = context.progress
        self.engine = engine or ExpectEngine(context)
        self.template = template
        self.hostname = self.default_hostname

    @property
    def exec_prompt(self) -> str:
        return f"{self.hostname}#"

    @property
    def config_prompt(self) -> str:
        return f"{self.hostname}(config)#"

    @property
    def interface_prompt(self) -> str:
        return f"{self.hostname}(config-if)#"

    def run(self) -> None:
        # Reject a broken template before anything reaches the device.
        for notice in validate_template(self.template, self.max_line):
            self.progress.emit(notice)

        try:
            self._wait_for_startup()
            self._enter_config_mode()
            self.configure()
            self._leave_config_mode()
        finally:
            self.context.flush_transcript()

        self.progress.emit("Settings applied!")
        self.progress.emit("Note: Settings have not been made persistent and will be lost upon reboot.")
        self.progress.emit("To fix this, run `wr` on the target device.")
        self.progress.complete()

    def configure(self) -> None:
        raise NotImplementedError

    def _wait_for_startup(self) -> None:
        self.progress.emit(f"Waiting for the {self.device_name} to start up")
        self.engine.set_read_timeout(STARTUP_TIMEOUT)
        self.engine.send_raw(CRLF)
        self.engine.await_condition(
            substring(f"{self.hostname}>"), answer(SETUP_DIALOG, "no"), poll_interval=1.0
        )

    def _enter_config_mode(self) -> None:
        self.engine.set_read_timeout(COMMAND_TIMEOUT)
        self.engine.exchange("")

        self.progress.emit("Elevating our privileges")
        self.engine.command("enable", suffix(self.exec_prompt))

        self.progress.emit("Entering global configuration mode")
        self.engine.command("conf t", suffix(self.config_prompt))

    def _leave_config_mode(self) -> None:
        self.engine.command("end", suffix(self.exec_prompt))

    def _set_hostname(self, hostname: str) -> None:
        self.progress.emit(f"Setting the hostname to {hostname}")
        self.engine.exchange(f"hostname {hostname}")
        self.hostname = hostname

    def _configure_lines(self) -> None:
        if not self.template.lines:
            return

        self.progress.emit("Configuring console lines")
        for line in self.template.lines:
            self._configure_line(line)

    def _configure_line(self, line: LineConfig) -> None:
        self.progress.emit(f"Configuring line {line.type} {line.start_line} to {line.end_line}")
        self.engine.exchange(line.command())

        if line.password:
            self.progress.emit("Applying the line password")
            self.engine.exchange(f"password {line.password}")

        login = line.login_command()
        if login:
            self.progress.emit("Enforcing credential usage on the line")
            self.engine.exchange(login)

        # console lines cannot take telnet or ssh
        if line.transport and line.type == "vty":
            self.progress.emit(f"Setting the transport type to {line.transport}")
            self.engine.exchange(f"transport input {line.transport}")

        self.engine.command("exit", suffix(self.config_prompt))

    def ssh_blockers(self) -> list[str]:
        """Warnings explaining why SSH cannot be enabled; empty when it can."""

        blockers: list[str] = []
        if not self.template.ssh.username:
            blockers.append("SSH username not specified.")
        if not self.template.ssh.password:
            blockers.append("SSH password not specified.")
        if not self.template.domain_name:
            blockers.append("Domain name not specified.")
        if not self.template.hostname:
            blockers.append("Hostname not specified.")
        return blockers

    def _configure_ssh(self) -> None:
        ssh = self.template.ssh
        if not ssh.enable:
            return

        self.progress.emit("Determining if SSH can be enabled")
        blockers = self.ssh_blockers()
        if blockers:
            for message in blockers:
                self.progress.warning(message)
            self.progress.emit("Skipping SSH setup")
            return

        self.progress.emit(f"Creating the local user {ssh.username}")
        self.engine.exchange(f"username {ssh.username} password {ssh.password}")

        self.progress.emit("Generating the RSA key")
        self.engine.exchange("crypto key gen rsa")

        bits = clamp_key_bits(ssh.key_bits)
        if bits != ssh.key_bits:
            logger.debug("key bits adjusted requested=%d used=%d", ssh.key_bits, bits, extra=self.context.log_extra)
        self.progress.emit(f"Generating an RSA key {bits} bits wide")
        self.engine.exchange(str(bits))

        self.engine.set_read_timeout(KEY_GENERATION_TIMEOUT)
        self.engine.await_condition(substring(self.config_prompt), on_silence(), poll_interval=0)
        self.engine.set_read_timeout(COMMAND_TIMEOUT)

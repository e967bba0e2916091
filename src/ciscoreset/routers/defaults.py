"""Apply a baseline configuration to a router that has just been reset."""

from __future__ import annotations

from ciscoreset.common.defaults import ConsoleDefaultsFSM
from ciscoreset.console.expect import suffix
from ciscoreset.core.config import MAX_LINE_NUMBER
from ciscoreset.core.models import PortConfig


class RouterDefaultsFSM(ConsoleDefaultsFSM):
    default_hostname = "Router"
    device_name = "router"
    max_line = MAX_LINE_NUMBER

    def configure(self) -> None:
        self._configure_ports()
        self._configure_lines()
        self._apply_single_settings()
        self._configure_ssh()

    def _configure_ports(self) -> None:
        if not self.template.ports:
            return

        self.progress.emit("Configuring the physical interfaces")
        for port in self.template.ports:
            self._configure_port(port)
        self.progress.emit("Finished configuring physical interfaces")

    def _configure_port(self, port: PortConfig) -> None:
        self.progress.emit(f"Configuring interface {port.name}")
        self.engine.command(f"inter {port.name}", suffix(self.interface_prompt))

        if port.ip and port.mask:
            self.progress.emit(f"Assigning IP {port.ip} with subnet mask {port.mask}")
            self.engine.exchange(f"ip addr {port.ip} {port.mask}")

        if port.shutdown:
            self.progress.emit("Shutting down the interface")
            self.engine.exchange("shutdown")
        else:
            self.progress.emit("Bringing up the interface")
            self.engine.exchange("no shutdown")

        self.progress.emit(f"Finished configuring {port.name}")
        self.engine.command("exit", suffix(self.config_prompt))

    def _apply_single_settings(self) -> None:
        template = self.template

        if template.default_route:
            self.progress.emit(f"Setting the default route to {template.default_route}")
            self.engine.exchange(f"ip route 0.0.0.0 0.0.0.0 {template.default_route}")

        if template.domain_name:
            self.progress.emit(f"Setting the domain name to {template.domain_name}")
            self.engine.exchange(f"ip domain-name {template.domain_name}")

        if template.enable_password:
            self.progress.emit("Setting the enable password")
            self.engine.exchange(f"enable secret {template.enable_password}")

        if template.hostname:
            self._set_hostname(template.hostname)

        if template.banner:
            self.progress.emit(f"Setting the banner to {template.banner}")
            self.engine.exchange(f'banner motd "{template.banner}"')

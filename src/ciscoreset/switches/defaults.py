"""Apply a baseline configuration to a switch that has just been reset.

Sections run in this order: vlan interfaces, physical ports, banner, the
legacy console password, enable secret, default gateway, hostname, domain
name, SSH and finally the console/vty lines.
"""

from __future__ import annotations

from ciscoreset.common.defaults import ConsoleDefaultsFSM
from ciscoreset.console.expect import suffix
from ciscoreset.core.config import SWITCH_MAX_LINE_NUMBER
from ciscoreset.core.models import SwitchPortConfig, VlanConfig

# Templates from this version on configure the console through "lines".
LINES_TEMPLATE_VERSION = 0.02


class SwitchDefaultsFSM(ConsoleDefaultsFSM):
    default_hostname = "Switch"
    device_name = "switch"
    max_line = SWITCH_MAX_LINE_NUMBER

    def configure(self) -> None:
        template = self.template

        self._configure_vlans()
        self._configure_ports()

        if template.banner:
            self.progress.emit(f"Setting the banner to {template.banner}")
            self.engine.exchange(f'banner motd "{template.banner}"')

        if template.version < LINES_TEMPLATE_VERSION and template.console_password:
            self._configure_console_password(template.console_password)

        if template.enable_password:
            self.progress.emit("Setting the privileged exec password")
            self.engine.exchange(f"enable secret {template.enable_password}")

        if template.default_gateway:
            self.progress.emit(f"Setting the default gateway to {template.default_gateway}")
            self.engine.exchange(f"ip default-gateway {template.default_gateway}")

        if template.hostname:
            self._set_hostname(template.hostname)

        if template.domain_name:
            self.progress.emit(f"Setting the domain name of the switch to {template.domain_name}")
            self.engine.exchange(f"ip domain-name {template.domain_name}")

        self._configure_ssh()
        self._configure_lines()

    def _configure_vlans(self) -> None:
        if not self.template.vlans:
            return

        for vlan in self.template.vlans:
            self._configure_vlan(vlan)
        self.progress.emit("Finished configuring vlans")

    def _configure_vlan(self, vlan: VlanConfig) -> None:
        self.progress.emit(f"Configuring vlan {vlan.vlan}")
        self.engine.command(f"inter vlan {vlan.vlan}", suffix(self.interface_prompt))

        if vlan.ip and vlan.mask:
            self.progress.emit(f"Assigning IP address {vlan.ip} with subnet mask {vlan.mask} to vlan {vlan.vlan}")
            self.engine.exchange(f"ip addr {vlan.ip} {vlan.mask}")

        if vlan.shutdown:
            self.progress.emit(f"Shutting down vlan {vlan.vlan}")
            self.engine.exchange("shutdown")
        else:
            self.progress.emit(f"Bringing up vlan {vlan.vlan}")
            self.engine.exchange("no shutdown")

        self.engine.command("exit", suffix(self.config_prompt))

    def _configure_ports(self) -> None:
        if not self.template.ports:
            return

        for port in self.template.ports:
            self._configure_port(port)
        self.progress.emit("Finished configuring ports")

    def _configure_port(self, port: SwitchPortConfig) -> None:
        self.progress.emit(f"Configuring port {port.name}")
        self.engine.command(f"inter {port.name}", suffix(self.interface_prompt))

        mode = port.mode.lower()
        if mode:
            self.progress.emit(f"Setting the switchport mode on port {port.name} to {port.mode}")
            self.engine.exchange(f"switchport mode {port.mode}")

        if port.vlan:
            if mode == "access":
                self.progress.emit(f"Setting port {port.name} to be an access port on vlan {port.vlan}")
                self.engine.exchange(f"switchport access vlan {port.vlan}")
            elif mode == "trunk":
                self.progress.emit(f"Setting port {port.name} to be a trunk port with native vlan {port.vlan}")
                self.engine.exchange(f"switchport trunk native vlan {port.vlan}")
            else:
                self.progress.emit(f"Switch port mode {port.mode} is not supported for static vlan assignment")

        if port.shutdown:
            self.progress.emit(f"Shutting down port {port.name}")
            self.engine.exchange("shutdown")
        else:
            self.progress.emit(f"Bringing up port {port.name}")
            self.engine.exchange("no shutdown")

        self.progress.emit(f"Finished configuring port {port.name}")
        self.engine.command("exit", suffix(self.config_prompt))

    def _configure_console_password(self, password: str) -> None:
        self.progress.emit("Setting the console password")
        self.engine.exchange("line console 0")
        self.engine.exchange(f"password {password}")
        self.progress.emit("Enabling login on the console port")
        self.engine.exchange("login")
        self.engine.command("exit", suffix(self.config_prompt))
        self.progress.emit("Finished configuring the console port")

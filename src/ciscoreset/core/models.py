"""Data models for serial settings, backups and device templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


Parity = Literal["none", "even", "odd", "mark", "space"]
LineType = Literal["console", "vty"]

PARITY_LETTERS: dict[str, str] = {"none": "N", "even": "E", "odd": "O", "mark": "M", "space": "S"}
RUN_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def run_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(RUN_TIMESTAMP_FORMAT)


@dataclass(frozen=True, slots=True)
class PortSettings:
    """Line settings for the console cable."""

    baud: int = 9600
    data_bits: int = 8
    parity: Parity = "none"
    stop_bits: float = 1

    def label(self) -> str:
        """Return the conventional ``9600-8N1`` notation."""

        stop = f"{self.stop_bits:g}"
        return f"{self.baud}-{self.data_bits}{PARITY_LETTERS[self.parity]}{stop}"

    def run_id(self, port: str, now: datetime | None = None) -> str:
        """Derive a run identifier from the port name, line settings and time."""

        port_name = port.replace("\\", "/").rstrip("/").split("/")[-1] or "port"
        return f"{port_name}_{self.label()}_{run_timestamp(now)}"


@dataclass(slots=True)
class BackupParameters:
    """Where and how to copy the startup-config before it is erased."""

    enabled: bool = False
    use_built_in_server: bool = False
    source_ip: str = ""
    subnet_mask: str = ""
    destination_host: str = ""
    filename_prefix: str = ""

    def missing_fields(self) -> list[str]:
        """Names of the values that keep the backup from running."""

        missing: list[str] = []
        if not self.destination_host:
            missing.append("destination_host")
        if self.source_ip and not self.subnet_mask:
            missing.append("subnet_mask")
        if self.subnet_mask and not self.source_ip:
            missing.append("source_ip")
        return missing

    @property
    def uses_dhcp(self) -> bool:
        return not self.source_ip and not self.subnet_mask

    def address_argument(self) -> str:
        """Argument for ``ip addr`` on the backup interface."""

        if self.uses_dhcp:
            return "dhcp"
        return f"{self.source_ip} {self.subnet_mask}"


@dataclass(slots=True)
class PortConfig:
    """Interface section of a defaults template."""

    name: str
    shutdown: bool = False
    ip: str = ""
    mask: str = ""


@dataclass(slots=True)
class LineConfig:
    """``line console``/``line vty`` section of a defaults template."""

    type: LineType
    start_line: int = 0
    end_line: int = 0
    login: str = ""
    transport: str = ""
    password: str = ""

    def command(self) -> str:
        if self.start_line == self.end_line:
            return f"line {self.type} {self.start_line}"
        return f"line {self.type} {self.start_line} {self.end_line}"

    def login_command(self) -> str | None:
        """``login`` variant to send, or ``None`` when the line keeps its default."""

        mode = self.login
        if not mode and self.password and self.type == "vty":
            mode = "local"
        if mode:
            return f"login {mode}"
        if self.type == "console" and self.password:
            return "login"
        return None


@dataclass(slots=True)
class SshConfig:
    enable: bool = False
    username: str = ""
    password: str = ""
    key_bits: int = 0


@dataclass(slots=True)
class DeviceDefaultsTemplate:
    """Baseline configuration applied to a freshly reset router."""

    version: float = 0.0
    ports: list[PortConfig] = field(default_factory=list)
    lines: list[LineConfig] = field(default_factory=list)
    enable_password: str = ""
    banner: str = ""
    hostname: str = ""
    domain_name: str = ""
    default_route: str = ""
    ssh: SshConfig = field(default_factory=SshConfig)


@dataclass(slots=True)
class VlanConfig:
    """``interface vlan N`` section of a switch template."""

    vlan: int
    shutdown: bool = False
    ip: str = ""
    mask: str = ""


@dataclass(slots=True)
class SwitchPortConfig:
    """Physical switch port; ``vlan`` applies to access and trunk ports only."""

    name: str
    mode: str = ""
    vlan: int = 0
    shutdown: bool = False


@dataclass(slots=True)
class SwitchDefaultsTemplate:
    """Baseline configuration applied to a freshly reset switch.

    ``console_password`` is only honoured by templates older than version
    0.02; newer ones configure the console through ``lines``.
    """

    version: float = 0.0
    vlans: list[VlanConfig] = field(default_factory=list)
    ports: list[SwitchPortConfig] = field(default_factory=list)
    lines: list[LineConfig] = field(default_factory=list)
    enable_password: str = ""
    console_password: str = ""
    banner: str = ""
    hostname: str = ""
    domain_name: str = ""
    default_gateway: str = ""
    ssh: SshConfig = field(default_factory=SshConfig)

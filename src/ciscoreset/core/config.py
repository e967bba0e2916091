"""Configuration helpers for ciscoreset.

Two kinds of input are handled here: device defaults templates (YAML or JSON,
parsed by the YAML loader) and the optional ``config/local.yml`` sections that
tune the serial line and the run. Values resolve with the priority
CLI > local.yml > built-in default.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from ciscoreset.core.models import (
    PARITY_LETTERS,
    DeviceDefaultsTemplate,
    LineConfig,
    PortConfig,
    PortSettings,
    SshConfig,
    SwitchDefaultsTemplate,
    SwitchPortConfig,
    VlanConfig,
)

MAX_LINE_NUMBER = 4
SWITCH_MAX_LINE_NUMBER = 15
MAX_VLAN_ID = 4094
LINE_TYPES = ("console", "vty")
DATA_BITS = (5, 6, 7, 8)
STOP_BITS = (1, 1.5, 2)

# Template keys are matched case-insensitively with "_" and "-" ignored, so
# "enablePassword", "EnablePassword" and "enable_password" are the same field.
_TEMPLATE_KEYS = {
    "version": "version",
    "ports": "ports",
    "lines": "lines",
    "enablepassword": "enable_password",
    "banner": "banner",
    "hostname": "hostname",
    "domainname": "domain_name",
    "defaultroute": "default_route",
    "ssh": "ssh",
}
_PORT_KEYS = {
    "name": "name",
    "port": "name",
    "shutdown": "shutdown",
    "ip": "ip",
    "ipaddress": "ip",
    "mask": "mask",
    "subnetmask": "mask",
}
_LINE_KEYS = {
    "type": "type",
    "startline": "start_line",
    "endline": "end_line",
    "login": "login",
    "transport": "transport",
    "password": "password",
}
_SSH_KEYS = {
    "enable": "enable",
    "username": "username",
    "password": "password",
    "keybits": "key_bits",
    "bits": "key_bits",
}
_SWITCH_TEMPLATE_KEYS = {
    "version": "version",
    "vlans": "vlans",
    "ports": "ports",
    "lines": "lines",
    "enablepassword": "enable_password",
    "consolepassword": "console_password",
    "banner": "banner",
    "hostname": "hostname",
    "domainname": "domain_name",
    "defaultgateway": "default_gateway",
    "ssh": "ssh",
}
_VLAN_KEYS = {
    "vlan": "vlan",
    "id": "vlan",
    "shutdown": "shutdown",
    "ip": "ip",
    "ipaddress": "ip",
    "mask": "mask",
    "subnetmask": "mask",
}
_SWITCHPORT_KEYS = {
    "name": "name",
    "port": "name",
    "mode": "mode",
    "switchportmode": "mode",
    "vlan": "vlan",
    "shutdown": "shutdown",
}


class TemplateValidationError(ValueError):
    """Raised when a defaults template cannot be parsed or validated."""


class SerialSettingsError(ValueError):
    """Raised when serial line settings are out of range."""


def _canonical_keys(
    raw: Mapping[str, Any], aliases: Mapping[str, str], context: str, logger: logging.Logger
) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in raw.items():
        folded = str(key).lower().replace("_", "").replace("-", "")
        canonical = aliases.get(folded)
        if canonical is None:
            logger.debug("%s: ignoring unknown field '%s'", context, key)
            continue
        result[canonical] = value
    return result


def _optional_string(mapping: Mapping[str, Any], field: str, context: str) -> str:
    value = mapping.get(field)
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TemplateValidationError(f"{context}: field '{field}' must be a string.")
    return str(value)


def _require_string(mapping: Mapping[str, Any], field: str, context: str) -> str:
    value = _optional_string(mapping, field, context)
    if value == "":
        raise TemplateValidationError(f"{context}: missing required field '{field}'.")
    return value


def _optional_int(mapping: Mapping[str, Any], field: str, context: str) -> int:
    value = mapping.get(field)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TemplateValidationError(f"{context}: field '{field}' must be an integer.")
    return value


def _optional_bool(mapping: Mapping[str, Any], field: str, context: str) -> bool:
    value = mapping.get(field)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TemplateValidationError(f"{context}: field '{field}' must be true or false.")
    return value


def _optional_list(mapping: Mapping[str, Any], field: str, context: str) -> list[Any]:
    value = mapping.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TemplateValidationError(f"{context}: field '{field}' must be a list.")
    return value


def _parse_port(raw: Any, context: str, logger: logging.Logger) -> PortConfig:
    if not isinstance(raw, Mapping):
        raise TemplateValidationError(f"{context}: each port must be a mapping.")
    fields = _canonical_keys(raw, _PORT_KEYS, context, logger)
    return PortConfig(
        name=_require_string(fields, "name", context),
        shutdown=_optional_bool(fields, "shutdown", context),
        ip=_optional_string(fields, "ip", context),
        mask=_optional_string(fields, "mask", context),
    )


def _parse_line(raw: Any, context: str, logger: logging.Logger) -> LineConfig:
    if not isinstance(raw, Mapping):
        raise TemplateValidationError(f"{context}: each line must be a mapping.")
    fields = _canonical_keys(raw, _LINE_KEYS, context, logger)
    line_type = _require_string(fields, "type", context).lower()
    if line_type not in LINE_TYPES:
        raise TemplateValidationError(
            f"{context}: invalid line type '{line_type}'. Allowed values: console, vty."
        )
    return LineConfig(
        type=line_type,  # type: ignore[arg-type]
        start_line=_optional_int(fields, "start_line", context),
        end_line=_optional_int(fields, "end_line", context),
        login=_optional_string(fields, "login", context),
        transport=_optional_string(fields, "transport", context),
        password=_optional_string(fields, "password", context),
    )


def _parse_vlan(raw: Any, context: str, logger: logging.Logger) -> VlanConfig:
    if not isinstance(raw, Mapping):
        raise TemplateValidationError(f"{context}: each vlan must be a mapping.")
    fields = _canonical_keys(raw, _VLAN_KEYS, context, logger)
    vlan = _optional_int(fields, "vlan", context)
    if not 1 <= vlan <= MAX_VLAN_ID:
        raise TemplateValidationError(f"{context}: vlan must be between 1 and {MAX_VLAN_ID}, got '{vlan}'.")
    return VlanConfig(
        vlan=vlan,
        shutdown=_optional_bool(fields, "shutdown", context),
        ip=_optional_string(fields, "ip", context),
        mask=_optional_string(fields, "mask", context),
    )


def _parse_switchport(raw: Any, context: str, logger: logging.Logger) -> SwitchPortConfig:
    if not isinstance(raw, Mapping):
        raise TemplateValidationError(f"{context}: each port must be a mapping.")
    fields = _canonical_keys(raw, _SWITCHPORT_KEYS, context, logger)
    return SwitchPortConfig(
        name=_require_string(fields, "name", context),
        mode=_optional_string(fields, "mode", context),
        vlan=_optional_int(fields, "vlan", context),
        shutdown=_optional_bool(fields, "shutdown", context),
    )


def _parse_ssh(raw: Any, logger: logging.Logger) -> SshConfig:
    if raw is None:
        return SshConfig()
    if not isinstance(raw, Mapping):
        raise TemplateValidationError("ssh: section must be a mapping.")
    fields = _canonical_keys(raw, _SSH_KEYS, "ssh", logger)
    return SshConfig(
        enable=_optional_bool(fields, "enable", "ssh"),
        username=_optional_string(fields, "username", "ssh"),
        password=_optional_string(fields, "password", "ssh"),
        key_bits=_optional_int(fields, "key_bits", "ssh"),
    )


def _template_version(fields: Mapping[str, Any]) -> float:
    version = fields.get("version") or 0.0
    if isinstance(version, bool) or not isinstance(version, (int, float)):
        raise TemplateValidationError("template: field 'version' must be a number.")
    return float(version)


def _parse_items(
    fields: Mapping[str, Any],
    field: str,
    label: str,
    parse: Callable[[Any, str, logging.Logger], Any],
    logger: logging.Logger,
) -> list[Any]:
    return [
        parse(item, f"{label} #{index}", logger)
        for index, item in enumerate(_optional_list(fields, field, "template"), start=1)
    ]


def parse_defaults_template(raw: Any, logger: logging.Logger | None = None) -> DeviceDefaultsTemplate:
    """Build a template from an already-decoded mapping."""

    logger = logger or logging.getLogger(__name__)
    if not isinstance(raw, Mapping):
        raise TemplateValidationError("Top-level template structure must be a mapping.")

    fields = _canonical_keys(raw, _TEMPLATE_KEYS, "template", logger)

    return DeviceDefaultsTemplate(
        version=_template_version(fields),
        ports=_parse_items(fields, "ports", "port", _parse_port, logger),
        lines=_parse_items(fields, "lines", "line", _parse_line, logger),
        enable_password=_optional_string(fields, "enable_password", "template"),
        banner=_optional_string(fields, "banner", "template"),
        hostname=_optional_string(fields, "hostname", "template"),
        domain_name=_optional_string(fields, "domain_name", "template"),
        default_route=_optional_string(fields, "default_route", "template"),
        ssh=_parse_ssh(fields.get("ssh"), logger),
    )


def parse_switch_template(raw: Any, logger: logging.Logger | None = None) -> SwitchDefaultsTemplate:
    """Build a switch template from an already-decoded mapping."""

    logger = logger or logging.getLogger(__name__)
    if not isinstance(raw, Mapping):
        raise TemplateValidationError("Top-level template structure must be a mapping.")

    fields = _canonical_keys(raw, _SWITCH_TEMPLATE_KEYS, "template", logger)

    return SwitchDefaultsTemplate(
        version=_template_version(fields),
        vlans=_parse_items(fields, "vlans", "vlan", _parse_vlan, logger),
        ports=_parse_items(fields, "ports", "port", _parse_switchport, logger),
        lines=_parse_items(fields, "lines", "line", _parse_line, logger),
        enable_password=_optional_string(fields, "enable_password", "template"),
        console_password=_optional_string(fields, "console_password", "template"),
        banner=_optional_string(fields, "banner", "template"),
        hostname=_optional_string(fields, "hostname", "template"),
        domain_name=_optional_string(fields, "domain_name", "template"),
        default_gateway=_optional_string(fields, "default_gateway", "template"),
        ssh=_parse_ssh(fields.get("ssh"), logger),
    )


def _read_template(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"Defaults template not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise TemplateValidationError(f"Unable to parse template {path}: {exc}") from exc


def load_defaults_template(path: Path, logger: logging.Logger | None = None) -> DeviceDefaultsTemplate:
    """Load a router defaults template from a YAML or JSON file."""

    logger = logger or logging.getLogger(__name__)
    template = parse_defaults_template(_read_template(path), logger)
    logger.info(
        "template loaded path=%s ports=%d lines=%d ssh=%s",
        path,
        len(template.ports),
        len(template.lines),
        template.ssh.enable,
    )
    return template


def load_switch_template(path: Path, logger: logging.Logger | None = None) -> SwitchDefaultsTemplate:
    """Load a switch defaults template from a YAML or JSON file."""

    logger = logger or logging.getLogger(__name__)
    template = parse_switch_template(_read_template(path), logger)
    logger.info(
        "switch template loaded path=%s vlans=%d ports=%d lines=%d ssh=%s",
        path,
        len(template.vlans),
        len(template.ports),
        len(template.lines),
        template.ssh.enable,
    )
    return template


def validate_template(
    template: DeviceDefaultsTemplate | SwitchDefaultsTemplate, max_line: int = MAX_LINE_NUMBER
) -> list[str]:
    """Clamp line ranges in place and return a notice for every adjustment.

    Line numbers are limited to 0..max_line (4 on routers, 15 on switches).
    A start line above the end line cannot be repaired and raises
    ``TemplateValidationError``.
    """

    notices: list[str] = []
    for line in template.lines:
        if line.type not in LINE_TYPES:
            raise TemplateValidationError(
                f"line {line.type}: invalid line type. Allowed values: console, vty."
            )

        if line.start_line > max_line:
            notices.append(f"Starting line of {line.start_line} is invalid, defaulting back to {max_line}")
            line.start_line = max_line
        elif line.start_line < 0:
            notices.append(f"Starting line of {line.start_line} is invalid, defaulting back to 0")
            line.start_line = 0

        if line.end_line > max_line:
            notices.append(f"Ending line of {line.end_line} is invalid, defaulting back to {max_line}")
            line.end_line = max_line
        elif line.end_line < 0:
            notices.append(f"Ending line of {line.end_line} is invalid, defaulting back to 0")
            line.end_line = 0

        if line.start_line > line.end_line:
            raise TemplateValidationError(
                f"line {line.type}: start line {line.start_line} is greater than end line {line.end_line}."
            )
    return notices


def _local_section(local_cfg: Mapping[str, Any] | None, name: str) -> Mapping[str, Any]:
    if not isinstance(local_cfg, Mapping):
        return {}
    section = local_cfg.get(name)
    return section if isinstance(section, Mapping) else {}


def resolve_setting(
    cli_value: Any,
    local_cfg: Mapping[str, Any] | None,
    section: str,
    key: str,
    default: Any,
    logger: logging.Logger | None = None,
) -> Any:
    """Pick a value with priority CLI > local.yml > default."""

    local_value = _local_section(local_cfg, section).get(key)
    if cli_value is not None:
        value, source = cli_value, "cli"
    elif local_value is not None:
        value, source = local_value, "local_yml"
    else:
        value, source = default, "default"

    if logger:
        logger.debug("%s.%s resolved value=%s source=%s", section, key, value, source)
    return value


def resolve_port_settings(
    cli_values: Mapping[str, Any], local_cfg: Mapping[str, Any] | None, logger: logging.Logger | None = None
) -> PortSettings:
    """Merge serial settings from the command line and local.yml."""

    defaults = PortSettings()
    baud = resolve_setting(cli_values.get("baud"), local_cfg, "serial", "baud", defaults.baud, logger)
    data_bits = resolve_setting(
        cli_values.get("data_bits"), local_cfg, "serial", "data_bits", defaults.data_bits, logger
    )
    parity = resolve_setting(cli_values.get("parity"), local_cfg, "serial", "parity", defaults.parity, logger)
    stop_bits = resolve_setting(
        cli_values.get("stop_bits"), local_cfg, "serial", "stop_bits", defaults.stop_bits, logger
    )

    if isinstance(baud, bool) or not isinstance(baud, int) or baud <= 0:
        raise SerialSettingsError(f"serial: baud must be a positive integer, got '{baud}'.")
    if data_bits not in DATA_BITS or isinstance(data_bits, bool):
        raise SerialSettingsError(f"serial: data_bits must be one of 5, 6, 7, 8, got '{data_bits}'.")
    parity = str(parity).lower()
    if parity not in PARITY_LETTERS:
        raise SerialSettingsError(
            f"serial: invalid parity '{parity}'. Allowed values: none, even, odd, mark, space."
        )
    if isinstance(stop_bits, bool) or stop_bits not in STOP_BITS:
        raise SerialSettingsError(f"serial: stop_bits must be one of 1, 1.5, 2, got '{stop_bits}'.")

    return PortSettings(baud=baud, data_bits=data_bits, parity=parity, stop_bits=stop_bits)  # type: ignore[arg-type]


def resolve_deadline(
    cli_value: float | None, local_cfg: Mapping[str, Any] | None, logger: logging.Logger | None = None
) -> float | None:
    """Run deadline in seconds, or None for an unbounded run."""

    value = resolve_setting(cli_value, local_cfg, "run", "deadline_seconds", None, logger)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"run: deadline_seconds must be a non-negative number, got '{value}'.")
    return float(value) or None

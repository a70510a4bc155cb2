"""Configuration loading utilities for the RackPower UPS client."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .cache import DEFAULT_MAX_AGE
from .errors import ConfigurationError
from .reader import DEFAULT_POLL_INTERVAL

_VALID_PARITY = {"N", "E", "O", "M", "S"}
_ALLOWED_STOPBITS = {1, 1.5, 2}


@dataclass(slots=True)
class SerialSettings:
    """Serial line parameters for the UPS connection."""

    port: str = "/dev/ttyUSB0"
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: float = 1
    timeout: float = 2.0
    write_timeout: float = 2.0


@dataclass(slots=True)
class ClientSettings:
    """Protocol-level behaviour of the client."""

    slave: int = 1
    max_age: float = DEFAULT_MAX_AGE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    reject_bad_crc: bool = True


@dataclass(slots=True)
class Config:
    """Top-level configuration container."""

    serial: SerialSettings = field(default_factory=SerialSettings)
    client: ClientSettings = field(default_factory=ClientSettings)


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in configuration file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{name} section must be a mapping")
    return section


def _number(section: Mapping[str, Any], key: str, default: Any, kind: type, where: str) -> Any:
    try:
        return kind(section.get(key, default))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where}.{key} must be {'an integer' if kind is int else 'numeric'}") from exc


def parse_config_dict(raw: Mapping[str, Any]) -> Config:
    """Parse configuration from an in-memory mapping."""

    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration root must be a mapping")

    defaults = SerialSettings()
    serial_raw = _section(raw, "serial")
    port = serial_raw.get("port", defaults.port)
    if not isinstance(port, str) or not port:
        raise ConfigurationError("serial.port must be a non-empty string")

    parity = str(serial_raw.get("parity", defaults.parity)).upper()
    if parity not in _VALID_PARITY:
        raise ConfigurationError(f"Invalid parity {parity!r}; expected one of {_VALID_PARITY}")

    stopbits = _number(serial_raw, "stopbits", defaults.stopbits, float, "serial")
    if stopbits not in _ALLOWED_STOPBITS:
        raise ConfigurationError("serial.stopbits must be one of 1, 1.5, 2")

    timeout = _number(serial_raw, "timeout", defaults.timeout, float, "serial")
    serial = SerialSettings(
        port=port,
        baudrate=_number(serial_raw, "baudrate", defaults.baudrate, int, "serial"),
        bytesize=_number(serial_raw, "bytesize", defaults.bytesize, int, "serial"),
        parity=parity,
        stopbits=stopbits,
        timeout=timeout,
        write_timeout=_number(serial_raw, "write_timeout", timeout, float, "serial"),
    )

    client_defaults = ClientSettings()
    client_raw = _section(raw, "client")
    client = ClientSettings(
        slave=_number(client_raw, "slave", client_defaults.slave, int, "client"),
        max_age=_number(client_raw, "max_age", client_defaults.max_age, float, "client"),
        poll_interval=_number(client_raw, "poll_interval", client_defaults.poll_interval, float, "client"),
        reject_bad_crc=bool(client_raw.get("reject_bad_crc", client_defaults.reject_bad_crc)),
    )
    if not (1 <= client.slave <= 247):
        raise ConfigurationError(f"client.slave {client.slave} out of range [1, 247]")
    if client.max_age < 0:
        raise ConfigurationError("client.max_age must not be negative")
    if client.poll_interval <= 0:
        raise ConfigurationError("client.poll_interval must be positive")

    return Config(serial=serial, client=client)


def load_config(path: Path) -> Config:
    """Load and validate configuration from a YAML file."""

    raw = _load_yaml(path)
    return parse_config_dict(raw)


def config_to_dict(config: Config) -> Dict[str, Any]:
    """Convert a Config instance back into a serialisable mapping."""

    return {
        "serial": {
            "port": config.serial.port,
            "baudrate": config.serial.baudrate,
            "bytesize": config.serial.bytesize,
            "parity": config.serial.parity,
            "stopbits": config.serial.stopbits,
            "timeout": config.serial.timeout,
            "write_timeout": config.serial.write_timeout,
        },
        "client": {
            "slave": config.client.slave,
            "max_age": config.client.max_age,
            "poll_interval": config.client.poll_interval,
            "reject_bad_crc": config.client.reject_bad_crc,
        },
    }


def save_config(path: Path, raw: Mapping[str, Any]) -> Config:
    """Validate and write configuration data to disk.

    Returns the parsed Config instance on success.
    """

    config = parse_config_dict(raw)
    serialisable = config_to_dict(config)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(serialisable, handle, sort_keys=False)
    return config


__all__ = [
    "SerialSettings",
    "ClientSettings",
    "Config",
    "ConfigurationError",
    "parse_config_dict",
    "load_config",
    "config_to_dict",
    "save_config",
]

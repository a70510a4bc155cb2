"""Client for RackPower UPS units speaking a vendor MODBUS RTU dialect."""

from . import cache, catalog, client, config, crc, decoder, directory, errors, frame, reader, transport
from .client import RackPowerClient
from .directory import RegisterDirectory

__all__ = [
    "cache",
    "catalog",
    "client",
    "config",
    "crc",
    "decoder",
    "directory",
    "errors",
    "frame",
    "reader",
    "transport",
    "RackPowerClient",
    "RegisterDirectory",
]

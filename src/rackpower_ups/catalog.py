"""Query groups and control commands understood by RackPower UPS units.

Every query group is answered by a single register read; several logical
readings are decoded from one response, so freshness is tracked per group.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from .frame import (
    FC_ALARM_HISTORY,
    FC_READ_HOLDING_REGISTERS,
    FC_READ_INPUT_REGISTERS,
    FC_VENDOR_COMMAND,
)


@dataclass(frozen=True)
class GroupSpec:
    """Wire parameters for one query group."""

    function_code: int
    start_register: int
    count: int
    min_registers: int
    base_delay: float
    max_extra_delay: float
    run_once: bool = False


class QueryGroup(Enum):
    """Closed set of register reads; values are the keys used in logs."""

    AUTO_DETECT = "auto_detect"
    MANUFACTURER_INFO = "manufacturer_info"
    POWER_INFO = "power_info"
    CHARGER_INVERTER = "charger_inverter"
    VERSION_TEMPS = "version_temps"
    OUTPUT_STATUS = "output_status"
    BATTERY_STATUS = "battery_status"
    SWITCH_STATUS = "switch_status"
    SYSTEM_STATUS = "system_status"
    IP_SCR_STATUS = "ip_scr_status"
    STATUS3 = "status3"

    @property
    def spec(self) -> GroupSpec:
        return GROUP_SPECS[self]


GROUP_SPECS: Dict[QueryGroup, GroupSpec] = {
    QueryGroup.AUTO_DETECT: GroupSpec(FC_READ_INPUT_REGISTERS, 20084, 1, 1, 0.050, 0.100, run_once=True),
    QueryGroup.MANUFACTURER_INFO: GroupSpec(FC_READ_HOLDING_REGISTERS, 10001, 101, 11, 0.260, 0.100, run_once=True),
    QueryGroup.POWER_INFO: GroupSpec(FC_READ_INPUT_REGISTERS, 20001, 103, 103, 0.260, 0.100),
    QueryGroup.CHARGER_INVERTER: GroupSpec(FC_READ_INPUT_REGISTERS, 20107, 3, 3, 0.050, 0.050),
    QueryGroup.VERSION_TEMPS: GroupSpec(FC_READ_INPUT_REGISTERS, 20131, 11, 10, 0.070, 0.050),
    QueryGroup.OUTPUT_STATUS: GroupSpec(FC_READ_INPUT_REGISTERS, 1, 1, 1, 0.050, 0.100),
    QueryGroup.BATTERY_STATUS: GroupSpec(FC_READ_INPUT_REGISTERS, 2, 1, 1, 0.050, 0.100),
    QueryGroup.SWITCH_STATUS: GroupSpec(FC_READ_INPUT_REGISTERS, 3, 1, 1, 0.050, 0.100),
    QueryGroup.SYSTEM_STATUS: GroupSpec(FC_READ_INPUT_REGISTERS, 4, 6, 6, 0.050, 0.100),
    QueryGroup.IP_SCR_STATUS: GroupSpec(FC_READ_INPUT_REGISTERS, 201, 3, 3, 0.050, 0.100),
    QueryGroup.STATUS3: GroupSpec(FC_READ_INPUT_REGISTERS, 10, 12, 12, 0.050, 0.100),
}


@dataclass(frozen=True)
class ControlCommand:
    """A vendor command: 3-byte header (function code first) and 2-byte payload."""

    header: bytes
    payload: bytes
    base_delay: float = 0.150
    max_extra_delay: float = 0.100


CONTROL_COMMANDS: Dict[str, ControlCommand] = {
    "clear_faults": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA1]), b"\x00\xff"),
    "manual_bypass": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA4]), b"\x00\xff"),
    "manual_transfer_to_inverter": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA4]), b"\x00\x01"),
    "ecs_manual_bypass": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA4]), b"\x00\x02"),
    "battery_test": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA5]), b"\x00\x0f"),
    "battery_maintenance": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA5]), b"\x00\xf0"),
    "manual_float": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA5]), b"\xf0\x00"),
    "manual_boost": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA5]), b"\x0f\x00"),
    "stop_test": ControlCommand(bytes([FC_VENDOR_COMMAND, 0x28, 0xA5]), b"\xff\xff"),
    "alarm_history": ControlCommand(bytes([FC_ALARM_HISTORY, 0x00, 0x01]), b"\x00\x06"),
}

BACKLIGHT_HEADER = bytes([FC_VENDOR_COMMAND, 0x27, 0x40])
BACKLIGHT_MINUTES: FrozenSet[int] = frozenset({1, 3, 5, 10, 20, 30})
BACKLIGHT_BASE_DELAY = 0.500
BACKLIGHT_EXTRA_DELAY = 0.100


__all__ = [
    "GroupSpec",
    "QueryGroup",
    "GROUP_SPECS",
    "ControlCommand",
    "CONTROL_COMMANDS",
    "BACKLIGHT_HEADER",
    "BACKLIGHT_MINUTES",
    "BACKLIGHT_BASE_DELAY",
    "BACKLIGHT_EXTRA_DELAY",
]

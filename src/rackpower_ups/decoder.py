"""Register-to-engineering-unit decoding for each query group.

A group layout is a declarative table: numeric readings are ``register *
scale`` at a fixed index, everything else (strings, versions, enumerations,
bitflags) goes through a small composite decoder. Decoding is all-or-nothing;
a short response raises before any value is produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from functools import reduce
from operator import or_
from typing import Any, Callable, Dict, Generic, List, Sequence, Tuple, Type, TypeVar

from .catalog import GROUP_SPECS, QueryGroup
from .errors import UnexpectedLengthError
from .frame import ModbusFrame


class _ClosedEnum(IntEnum):
    """Enumeration that maps undocumented raw values onto ``UNKNOWN``."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        return cls.__members__.get("UNKNOWN")


class HardwareType(_ClosedEnum):
    UNKNOWN = 0
    ACM_10_600KVA = 1
    TT_10_40KVA = 2
    TS_10_20KVA = 3
    SS_6_20KVA = 4
    SS_1_3KVA = 5


class SwitchState(_ClosedEnum):
    UNKNOWN = -1
    BATTERY_NOT_CONNECTED = 0
    NORMAL = 1
    MBCB_CLOSED_BATTERY_NOT_CONNECTED = 2
    MBCB_CLOSED = 3
    EPO_BATTERY_NOT_CONNECTED = 4
    EPO = 5
    MBCB_CLOSED_BATTERY_NOT_CONNECTED_EPO = 6
    MBCB_CLOSED_EPO = 7


class OutputStatus(_ClosedEnum):
    UNKNOWN = -1
    NO_OUTPUT = 0
    INVERTER = 1
    DIODE = 2


class SystemStatusFlags(IntFlag):
    NONE = 0
    AMBIENT_OVER_TEMP = 0x1
    REC_CAN_FAIL = 0x2
    INV_IO_CAN_FAIL = 0x4
    INV_DATA_CAN_FAIL = 0x8


class SystemStatus2Flags(IntFlag):
    NONE = 0
    BYPASS_POWER_FUSE_FAIL = 0x1
    RATED_KVA_OVER_RANGE = 0x2


class IpScrFlags(IntFlag):
    NONE = 0
    NO_TEMP_SENSOR = 0x2
    OVER_TEMP = 0x4


F = TypeVar("F", bound=IntFlag)


@dataclass(frozen=True)
class FlagSet(Generic[F]):
    """A raw status register viewed through a closed set of named bits.

    Bits without a name are kept in ``reserved`` instead of being dropped.
    """

    raw: int
    kind: Type[F]

    @property
    def mask(self) -> int:
        return reduce(or_, (int(member) for member in self.kind.__members__.values()), 0)

    @property
    def flags(self) -> F:
        return self.kind(self.raw & self.mask)

    @property
    def reserved(self) -> int:
        return self.raw & ~self.mask

    @property
    def names(self) -> List[str]:
        return [
            name
            for name, member in self.kind.__members__.items()
            if int(member) and (self.raw & int(member)) == int(member)
        ]

    def __contains__(self, flag: object) -> bool:
        if not isinstance(flag, self.kind):
            return False
        return int(flag) != 0 and (self.raw & int(flag)) == int(flag)

    def __bool__(self) -> bool:
        return self.raw != 0

    def __str__(self) -> str:
        parts = self.names
        if self.reserved:
            parts.append(f"reserved=0x{self.reserved:04X}")
        return "|".join(parts) if parts else "NONE"


@dataclass(frozen=True)
class Scaled:
    """``field = registers[index] * scale`` as a float."""

    field: str
    index: int
    scale: float = 1.0

    def decode(self, frame: ModbusFrame, registers: Sequence[int]) -> float:
        return float(registers[self.index] * self.scale)


@dataclass(frozen=True)
class Composite:
    """A non-numeric field computed from the frame and its registers."""

    field: str
    func: Callable[[ModbusFrame, Sequence[int]], Any]

    def decode(self, frame: ModbusFrame, registers: Sequence[int]) -> Any:
        return self.func(frame, registers)


@dataclass(frozen=True)
class GroupLayout:
    group: QueryGroup
    min_registers: int
    fields: Tuple[Any, ...]
    min_bytes: int = 0

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(entry.field for entry in self.fields)


def ascii_span(data: bytes, start: int, length: int) -> str:
    """Decode ``data[start:start + length]`` as ASCII, trimming NUL padding."""

    if start < 0 or start + length > len(data):
        raise IndexError(f"byte span {start}..{start + length} outside payload of {len(data)} bytes")
    return data[start : start + length].decode("ascii", errors="replace").rstrip("\x00 ").strip()


def version_string(registers: Sequence[int], *indices: int) -> str:
    return ".".join(str(registers[i]) for i in indices)


def to_enum(kind: Type[IntEnum], raw: int) -> IntEnum:
    return kind(raw)


# Model name bytes inside the manufacturer info payload (byte count prefix included).
MODEL_OFFSET = 143
MODEL_LENGTH = 8


def _model(frame: ModbusFrame, registers: Sequence[int]) -> str:
    return ascii_span(frame.data, MODEL_OFFSET, MODEL_LENGTH)


LAYOUTS: Dict[QueryGroup, GroupLayout] = {
    QueryGroup.AUTO_DETECT: GroupLayout(
        QueryGroup.AUTO_DETECT,
        GROUP_SPECS[QueryGroup.AUTO_DETECT].min_registers,
        (Composite("hardware", lambda f, r: to_enum(HardwareType, r[0])),),
    ),
    QueryGroup.MANUFACTURER_INFO: GroupLayout(
        QueryGroup.MANUFACTURER_INFO,
        GROUP_SPECS[QueryGroup.MANUFACTURER_INFO].min_registers,
        (
            Composite("model", _model),
            Composite("battery_count", lambda f, r: int(r[10])),
        ),
        min_bytes=MODEL_OFFSET + MODEL_LENGTH,
    ),
    QueryGroup.POWER_INFO: GroupLayout(
        QueryGroup.POWER_INFO,
        GROUP_SPECS[QueryGroup.POWER_INFO].min_registers,
        (
            Scaled("bypass_voltage", 0, 0.1),
            Scaled("bypass_freq", 6, 0.01),
            Scaled("bypass_pf", 9, 0.01),
            Scaled("main_voltage", 12, 0.1),
            Scaled("main_current", 15, 0.1),
            Scaled("main_freq", 18, 0.01),
            Scaled("main_pf", 21, 0.01),
            Scaled("output_voltage", 24, 0.1),
            Scaled("out_current", 27, 0.1),
            Scaled("output_freq", 30, 0.01),
            Scaled("output_pf", 33, 0.01),
            Scaled("va", 36),
            Scaled("watts", 39),
            Scaled("load_percent", 45, 0.1),
            Scaled("battery_voltage", 49, 0.1),
            Scaled("battery_current", 51, 0.1),
            Scaled("battery_temp", 53, 0.1),
            Scaled("battery_time_remain", 54, 0.1),
            Scaled("battery_capacity", 55, 0.1),
            Scaled("runtime", 69, 0.1),
            Scaled("syscode", 93),
            Scaled("rated_input_voltage", 95),
            Scaled("rated_input_freq", 96),
            Scaled("rated_output_voltage", 97),
            Scaled("rated_output_freq", 98),
            Scaled("max_watt", 100),
            Scaled("bus_voltage", 102, 0.1),
        ),
    ),
    QueryGroup.CHARGER_INVERTER: GroupLayout(
        QueryGroup.CHARGER_INVERTER,
        GROUP_SPECS[QueryGroup.CHARGER_INVERTER].min_registers,
        (
            Scaled("charger_current", 0, 0.1),
            Scaled("inverter_voltage", 2, 0.1),
        ),
    ),
    QueryGroup.VERSION_TEMPS: GroupLayout(
        QueryGroup.VERSION_TEMPS,
        GROUP_SPECS[QueryGroup.VERSION_TEMPS].min_registers,
        (
            Scaled("rec_igbt_temp", 0, 0.1),
            Scaled("inv_igbt_temp", 3, 0.1),
            Composite("version", lambda f, r: version_string(r, 7, 8, 9)),
        ),
    ),
    QueryGroup.OUTPUT_STATUS: GroupLayout(
        QueryGroup.OUTPUT_STATUS,
        GROUP_SPECS[QueryGroup.OUTPUT_STATUS].min_registers,
        (Composite("output_status", lambda f, r: to_enum(OutputStatus, r[0])),),
    ),
    QueryGroup.BATTERY_STATUS: GroupLayout(
        QueryGroup.BATTERY_STATUS,
        GROUP_SPECS[QueryGroup.BATTERY_STATUS].min_registers,
        (Composite("battery_connected", lambda f, r: r[0] == 1),),
    ),
    QueryGroup.SWITCH_STATUS: GroupLayout(
        QueryGroup.SWITCH_STATUS,
        GROUP_SPECS[QueryGroup.SWITCH_STATUS].min_registers,
        (Composite("switch_state", lambda f, r: to_enum(SwitchState, r[0])),),
    ),
    QueryGroup.SYSTEM_STATUS: GroupLayout(
        QueryGroup.SYSTEM_STATUS,
        GROUP_SPECS[QueryGroup.SYSTEM_STATUS].min_registers,
        (
            Composite("status_flags", lambda f, r: FlagSet(r[4], SystemStatusFlags)),
            Composite("status_flags2", lambda f, r: FlagSet(r[5], SystemStatus2Flags)),
        ),
    ),
    QueryGroup.IP_SCR_STATUS: GroupLayout(
        QueryGroup.IP_SCR_STATUS,
        GROUP_SPECS[QueryGroup.IP_SCR_STATUS].min_registers,
        (Composite("ip_scr_flags", lambda f, r: FlagSet(r[2], IpScrFlags)),),
    ),
    QueryGroup.STATUS3: GroupLayout(
        QueryGroup.STATUS3,
        GROUP_SPECS[QueryGroup.STATUS3].min_registers,
        (Composite("status3_registers", lambda f, r: tuple(r[:12])),),
    ),
}

# field name -> owning group
FIELD_GROUPS: Dict[str, QueryGroup] = {
    name: layout.group for layout in LAYOUTS.values() for name in layout.field_names
}


def decode_group(layout: GroupLayout, frame: ModbusFrame, registers: Sequence[int]) -> Dict[str, Any]:
    """Apply *layout* to one response and return every field it produces."""

    label = layout.group.name
    if len(registers) < layout.min_registers:
        raise UnexpectedLengthError(label, layout.min_registers, len(registers))
    if len(frame.data) < layout.min_bytes:
        raise UnexpectedLengthError(label, layout.min_bytes, len(frame.data), unit="bytes")

    return {entry.field: entry.decode(frame, registers) for entry in layout.fields}


__all__ = [
    "HardwareType",
    "SwitchState",
    "OutputStatus",
    "SystemStatusFlags",
    "SystemStatus2Flags",
    "IpScrFlags",
    "FlagSet",
    "Scaled",
    "Composite",
    "GroupLayout",
    "LAYOUTS",
    "FIELD_GROUPS",
    "ascii_span",
    "version_string",
    "to_enum",
    "decode_group",
]

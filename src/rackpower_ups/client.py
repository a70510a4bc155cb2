"""Synchronous RackPower UPS client over a MODBUS RTU byte transport.

Reading a value is split in two phases: :meth:`RackPowerClient.refresh`
performs one wire exchange for a query group and :meth:`RackPowerClient.get`
returns the last decoded value without I/O. :meth:`RackPowerClient.read`
(and every convenience property) combines both through the freshness cache.
"""

from __future__ import annotations

import logging
import struct
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .cache import DEFAULT_MAX_AGE, FreshnessCache
from .catalog import (
    BACKLIGHT_BASE_DELAY,
    BACKLIGHT_EXTRA_DELAY,
    BACKLIGHT_HEADER,
    BACKLIGHT_MINUTES,
    CONTROL_COMMANDS,
    QueryGroup,
)
from .config import Config
from .decoder import (
    FIELD_GROUPS,
    LAYOUTS,
    IpScrFlags,
    SystemStatus2Flags,
    SystemStatusFlags,
    decode_group,
)
from .errors import CrcMismatchError, DeviceExceptionError, InvalidArgumentError
from .frame import ModbusFrame, decode_frame, encode_command, encode_request, extract_registers
from .reader import DEFAULT_POLL_INTERVAL, AdaptiveReader
from .transport import SerialTransport, Transport


_LOG = logging.getLogger(__name__)


def _reading(name: str, doc: str) -> property:
    return property(lambda self: self.read(name), doc=doc)


def _flag(field: str, flag: Any, doc: str) -> property:
    return property(lambda self: flag in self.read(field), doc=doc)


class RackPowerClient:
    """Poll and control one UPS (one slave address) over *transport*.

    A single re-entrant lock covers the transport and the decoded values, so
    request/response cycles from different threads never overlap. Failed
    exchanges propagate to the caller; nothing is retried here.
    """

    def __init__(
        self,
        transport: Transport,
        slave: int = 1,
        max_age: float = DEFAULT_MAX_AGE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        reject_bad_crc: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not (1 <= slave <= 247):
            raise InvalidArgumentError(f"slave {slave} out of range [1, 247]")
        self.slave = slave
        self.reject_bad_crc = reject_bad_crc
        self._transport = transport
        self._lock = threading.RLock()
        self._reader = AdaptiveReader(transport, poll_interval=poll_interval, sleep=sleep)
        self._cache = FreshnessCache(max_age, keys=QueryGroup, clock=clock, lock=self._lock)
        self._values: Dict[str, Any] = dict.fromkeys(FIELD_GROUPS)

    @classmethod
    def from_config(cls, config: Config) -> "RackPowerClient":
        serial = config.serial
        transport = SerialTransport(
            serial.port,
            baudrate=serial.baudrate,
            bytesize=serial.bytesize,
            parity=serial.parity,
            stopbits=serial.stopbits,
            timeout=serial.timeout,
            write_timeout=serial.write_timeout,
        )
        return cls(
            transport,
            slave=config.client.slave,
            max_age=config.client.max_age,
            poll_interval=config.client.poll_interval,
            reject_bad_crc=config.client.reject_bad_crc,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def cache(self) -> FreshnessCache:
        return self._cache

    def open(self) -> None:
        with self._lock:
            self._transport.open()

    def close(self) -> None:
        with self._lock:
            self._transport.close()

    def __enter__(self) -> "RackPowerClient":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Two-phase value access
    # ------------------------------------------------------------------

    def refresh(self, group: QueryGroup) -> None:
        """Query *group* now, regardless of its age, and record the refresh."""

        with self._lock:
            self._refresh_group(group)
            self._cache.touch(group, group.spec.run_once)

    def get(self, field: str) -> Any:
        """Return the last decoded value of *field* (``None`` before any refresh)."""

        with self._lock:
            if field not in self._values:
                raise KeyError(f"Unknown field {field!r}")
            return self._values[field]

    def read(self, field: str) -> Any:
        """Return *field*, refreshing its query group first if it is stale."""

        group = FIELD_GROUPS.get(field)
        if group is None:
            raise KeyError(f"Unknown field {field!r}")
        return self._cache.ensure_fresh(
            group,
            lambda: self._values[field],
            lambda: self._refresh_group(group),
            run_once=group.spec.run_once,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Read every field, refreshing stale groups once each."""

        with self._lock:
            return {field: self.read(field) for field in FIELD_GROUPS}

    @property
    def buffer_underruns(self) -> int:
        return self._reader.buffer_underruns

    @property
    def underrun_operation(self) -> Optional[str]:
        return self._reader.underrun_operation

    # ------------------------------------------------------------------
    # Control commands
    # ------------------------------------------------------------------

    def send_command(self, name: str) -> List[int]:
        """Send the named control command and return the reply registers."""

        command = CONTROL_COMMANDS.get(name)
        if command is None:
            raise InvalidArgumentError(
                f"Unknown command {name!r}; expected one of {sorted(CONTROL_COMMANDS)}"
            )
        request = encode_command(self.slave, command.header, command.payload)
        with self._lock:
            frame = self._exchange(request, command.base_delay, command.max_extra_delay, name)
        return extract_registers(frame)

    def clear_faults(self) -> None:
        self.send_command("clear_faults")

    def manual_bypass(self) -> None:
        self.send_command("manual_bypass")

    def manual_transfer_to_inverter(self) -> None:
        self.send_command("manual_transfer_to_inverter")

    def ecs_manual_bypass(self) -> None:
        self.send_command("ecs_manual_bypass")

    def battery_test(self) -> None:
        self.send_command("battery_test")

    def battery_maintenance(self) -> None:
        self.send_command("battery_maintenance")

    def manual_float(self) -> None:
        self.send_command("manual_float")

    def manual_boost(self) -> None:
        self.send_command("manual_boost")

    def stop_test(self) -> None:
        self.send_command("stop_test")

    def alarm_history(self) -> List[int]:
        return self.send_command("alarm_history")

    def set_backlight_timer(self, minutes: int) -> None:
        """Set the front panel backlight timeout (1, 3, 5, 10, 20 or 30 minutes)."""

        if minutes not in BACKLIGHT_MINUTES:
            raise InvalidArgumentError(
                f"Invalid backlight timer {minutes!r}; valid values: {sorted(BACKLIGHT_MINUTES)}"
            )
        request = encode_command(self.slave, BACKLIGHT_HEADER, struct.pack(">H", minutes))
        with self._lock:
            self._exchange(request, BACKLIGHT_BASE_DELAY, BACKLIGHT_EXTRA_DELAY, "set_backlight_timer")

    # ------------------------------------------------------------------
    # Wire exchange
    # ------------------------------------------------------------------

    def _refresh_group(self, group: QueryGroup) -> None:
        spec = group.spec
        request = encode_request(self.slave, spec.function_code, spec.start_register, spec.count)
        frame = self._exchange(request, spec.base_delay, spec.max_extra_delay, group.name)
        registers = extract_registers(frame, byte_count_prefixed=True)
        values = decode_group(LAYOUTS[group], frame, registers)
        self._values.update(values)

    def _exchange(self, request: bytes, base_delay: float, max_extra_delay: float, operation: str) -> ModbusFrame:
        self._transport.reset_input_buffer()
        _LOG.debug("TX %s: %s", operation, request.hex())
        self._transport.write(request)
        frame = decode_frame(self._reader.read(base_delay, max_extra_delay, operation))

        if not frame.crc_valid:
            _LOG.warning("CRC mismatch in %s response (received 0x%04X)", operation, frame.crc)
            if self.reject_bad_crc:
                raise CrcMismatchError(f"{operation}: response CRC mismatch")
        if frame.slave_address != self.slave:
            _LOG.warning("%s answered by slave %d, expected %d", operation, frame.slave_address, self.slave)
        if frame.is_exception:
            raise DeviceExceptionError(frame.function_code, frame.exception_code)
        return frame

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    model = _reading("model", "Model string from the manufacturer info block.")
    battery_count = _reading("battery_count", "Number of battery blocks.")
    hardware = _reading("hardware", "Detected hardware series (HardwareType).")
    version = _reading("version", "Firmware version, major.minor.patch.")

    bypass_voltage = _reading("bypass_voltage", "Bypass voltage, V.")
    bypass_freq = _reading("bypass_freq", "Bypass frequency, Hz.")
    bypass_pf = _reading("bypass_pf", "Bypass power factor.")
    main_voltage = _reading("main_voltage", "Mains input voltage, V.")
    main_current = _reading("main_current", "Mains input current, A.")
    main_freq = _reading("main_freq", "Mains input frequency, Hz.")
    main_pf = _reading("main_pf", "Mains input power factor.")
    output_voltage = _reading("output_voltage", "Output voltage, V.")
    out_current = _reading("out_current", "Output current, A.")
    output_freq = _reading("output_freq", "Output frequency, Hz.")
    output_pf = _reading("output_pf", "Output power factor.")
    va = _reading("va", "Output apparent power, VA.")
    watts = _reading("watts", "Output active power, W.")
    load_percent = _reading("load_percent", "Output load, percent.")
    battery_voltage = _reading("battery_voltage", "Battery voltage, V.")
    battery_current = _reading("battery_current", "Battery current, A.")
    battery_temp = _reading("battery_temp", "Battery temperature, degrees C.")
    battery_time_remain = _reading("battery_time_remain", "Remaining battery time, minutes.")
    battery_capacity = _reading("battery_capacity", "Battery capacity, percent.")
    runtime = _reading("runtime", "Runtime counter.")
    syscode = _reading("syscode", "System code.")
    rated_input_voltage = _reading("rated_input_voltage", "Rated input voltage, V.")
    rated_input_freq = _reading("rated_input_freq", "Rated input frequency, Hz.")
    rated_output_voltage = _reading("rated_output_voltage", "Rated output voltage, V.")
    rated_output_freq = _reading("rated_output_freq", "Rated output frequency, Hz.")
    max_watt = _reading("max_watt", "Maximum output power, W.")
    bus_voltage = _reading("bus_voltage", "DC bus voltage, V.")

    charger_current = _reading("charger_current", "Charger current, A.")
    inverter_voltage = _reading("inverter_voltage", "Inverter voltage, V.")
    rec_igbt_temp = _reading("rec_igbt_temp", "Rectifier IGBT temperature, degrees C.")
    inv_igbt_temp = _reading("inv_igbt_temp", "Inverter IGBT temperature, degrees C.")

    output_status = _reading("output_status", "Output source (OutputStatus).")
    battery_connected = _reading("battery_connected", "True when the battery is connected.")
    switch_state = _reading("switch_state", "Breaker and EPO state (SwitchState).")
    status_flags = _reading("status_flags", "System status register 4 (FlagSet).")
    status_flags2 = _reading("status_flags2", "System status register 5 (FlagSet).")
    ip_scr_flags = _reading("ip_scr_flags", "Input SCR status (FlagSet).")
    status3_registers = _reading("status3_registers", "Raw status block starting at register 10.")

    is_ambient_over_temp = _flag("status_flags", SystemStatusFlags.AMBIENT_OVER_TEMP, "Ambient over temperature.")
    is_rec_can_fail = _flag("status_flags", SystemStatusFlags.REC_CAN_FAIL, "Rectifier CAN failure.")
    is_inv_io_can_fail = _flag("status_flags", SystemStatusFlags.INV_IO_CAN_FAIL, "Inverter IO CAN failure.")
    is_inv_data_can_fail = _flag("status_flags", SystemStatusFlags.INV_DATA_CAN_FAIL, "Inverter data CAN failure.")
    is_bypass_power_fuse_fail = _flag(
        "status_flags2", SystemStatus2Flags.BYPASS_POWER_FUSE_FAIL, "Bypass power fuse failure."
    )
    is_rated_kva_over_range = _flag(
        "status_flags2", SystemStatus2Flags.RATED_KVA_OVER_RANGE, "Rated kVA over range."
    )
    is_ip_scr_over_temp = _flag("ip_scr_flags", IpScrFlags.OVER_TEMP, "Input SCR over temperature.")


__all__ = ["RackPowerClient"]

"""Unit tests for register-to-engineering-unit decoding."""

import struct
import sys
import unittest
from pathlib import Path

# Ensure project src is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rackpower_ups.catalog import GROUP_SPECS, QueryGroup
from rackpower_ups.decoder import (
    FIELD_GROUPS,
    LAYOUTS,
    FlagSet,
    HardwareType,
    OutputStatus,
    Scaled,
    SwitchState,
    SystemStatusFlags,
    decode_group,
    version_string,
)
from rackpower_ups.errors import UnexpectedLengthError
from rackpower_ups.frame import ModbusFrame, extract_registers


def _frame(registers, function_code=0x04):
    payload = b"".join(struct.pack(">H", value) for value in registers)
    return ModbusFrame(1, function_code, bytes([len(payload) & 0xFF]) + payload, 0, True)


def _decode(group, registers):
    frame = _frame(registers)
    return decode_group(LAYOUTS[group], frame, extract_registers(frame, byte_count_prefixed=True))


class TestScaledValues(unittest.TestCase):
    def test_tenth_scale(self):
        self.assertAlmostEqual(Scaled("x", 0, 0.1).decode(_frame([1234]), [1234]), 123.4)

    def test_power_info_layout(self):
        registers = [0] * 103
        registers[0] = 2301
        registers[6] = 5002
        registers[24] = 2305
        registers[33] = 98
        registers[36] = 1500
        registers[55] = 1000
        registers[102] = 4000
        values = _decode(QueryGroup.POWER_INFO, registers)
        self.assertAlmostEqual(values["bypass_voltage"], 230.1)
        self.assertAlmostEqual(values["bypass_freq"], 50.02)
        self.assertAlmostEqual(values["output_voltage"], 230.5)
        self.assertAlmostEqual(values["output_pf"], 0.98)
        self.assertEqual(values["va"], 1500.0)
        self.assertAlmostEqual(values["battery_capacity"], 100.0)
        self.assertAlmostEqual(values["bus_voltage"], 400.0)
        self.assertIsInstance(values["watts"], float)

    def test_short_response_raises(self):
        with self.assertRaises(UnexpectedLengthError) as ctx:
            _decode(QueryGroup.POWER_INFO, [0] * 101)
        self.assertEqual(ctx.exception.expected, 103)
        self.assertEqual(ctx.exception.actual, 101)


class TestCompositeValues(unittest.TestCase):
    def test_version_string(self):
        registers = [456, 0, 0, 612, 0, 0, 0, 3, 2, 15, 0]
        values = _decode(QueryGroup.VERSION_TEMPS, registers)
        self.assertEqual(values["version"], "3.2.15")
        self.assertAlmostEqual(values["rec_igbt_temp"], 45.6)
        self.assertAlmostEqual(values["inv_igbt_temp"], 61.2)
        self.assertEqual(version_string([1, 2, 3], 2, 0), "3.1")

    def test_model_and_battery_count(self):
        registers = [0] * 101
        registers[10] = 32
        registers[71:75] = [0x5250, 0x3130, 0x4B56, 0x4100]
        values = _decode(QueryGroup.MANUFACTURER_INFO, registers)
        self.assertEqual(values["model"], "RP10KVA")
        self.assertEqual(values["battery_count"], 32)

    def test_model_span_missing(self):
        with self.assertRaises(UnexpectedLengthError):
            _decode(QueryGroup.MANUFACTURER_INFO, [0] * 20)

    def test_enumerations(self):
        self.assertIs(_decode(QueryGroup.AUTO_DETECT, [3])["hardware"], HardwareType.TS_10_20KVA)
        self.assertIs(_decode(QueryGroup.OUTPUT_STATUS, [2])["output_status"], OutputStatus.DIODE)
        self.assertIs(_decode(QueryGroup.SWITCH_STATUS, [0])["switch_state"], SwitchState.BATTERY_NOT_CONNECTED)

    def test_undocumented_enum_values_map_to_unknown(self):
        self.assertIs(_decode(QueryGroup.AUTO_DETECT, [99])["hardware"], HardwareType.UNKNOWN)
        self.assertIs(_decode(QueryGroup.SWITCH_STATUS, [42])["switch_state"], SwitchState.UNKNOWN)
        self.assertIs(_decode(QueryGroup.OUTPUT_STATUS, [7])["output_status"], OutputStatus.UNKNOWN)

    def test_battery_connected(self):
        self.assertTrue(_decode(QueryGroup.BATTERY_STATUS, [1])["battery_connected"])
        self.assertFalse(_decode(QueryGroup.BATTERY_STATUS, [0])["battery_connected"])
        self.assertFalse(_decode(QueryGroup.BATTERY_STATUS, [2])["battery_connected"])

    def test_status_flags_keep_reserved_bits(self):
        values = _decode(QueryGroup.SYSTEM_STATUS, [0, 0, 0, 0, 0x0105, 0x0002])
        flags = values["status_flags"]
        self.assertEqual(flags.raw, 0x0105)
        self.assertEqual(flags.reserved, 0x0100)
        self.assertEqual(flags.flags, SystemStatusFlags.AMBIENT_OVER_TEMP | SystemStatusFlags.INV_IO_CAN_FAIL)
        self.assertIn(SystemStatusFlags.AMBIENT_OVER_TEMP, flags)
        self.assertNotIn(SystemStatusFlags.REC_CAN_FAIL, flags)
        self.assertEqual(flags.names, ["AMBIENT_OVER_TEMP", "INV_IO_CAN_FAIL"])
        self.assertEqual(str(values["status_flags2"]), "RATED_KVA_OVER_RANGE")

    def test_empty_flag_set(self):
        flags = FlagSet(0, SystemStatusFlags)
        self.assertFalse(flags)
        self.assertEqual(str(flags), "NONE")
        self.assertNotIn(SystemStatusFlags.NONE, flags)


class TestLayoutTable(unittest.TestCase):
    def test_every_group_has_a_layout(self):
        self.assertEqual(set(LAYOUTS), set(QueryGroup))

    def test_indices_fit_group_minimum(self):
        for group, layout in LAYOUTS.items():
            for entry in layout.fields:
                if isinstance(entry, Scaled):
                    with self.subTest(field=entry.field):
                        self.assertLess(entry.index, layout.min_registers)
            self.assertLessEqual(layout.min_registers, GROUP_SPECS[group].count)

    def test_field_names_are_unique(self):
        total = sum(len(layout.fields) for layout in LAYOUTS.values())
        self.assertEqual(total, len(FIELD_GROUPS))


if __name__ == "__main__":
    unittest.main()

"""Unit tests for the CRC engine, frame codec and register extractor."""

import random
import struct
import sys
import unittest
from pathlib import Path

# Ensure project src is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rackpower_ups.crc import crc16
from rackpower_ups.errors import InvalidArgumentError, MalformedFrameError
from rackpower_ups.frame import (
    ModbusFrame,
    decode_frame,
    encode_command,
    encode_request,
    extract_registers,
)


class TestCrc16(unittest.TestCase):
    """Checksums against frames captured from a real unit."""

    CAPTURED = [
        "01044e74000166f8",
        "010327110065df50",
        "01044e210067f6c2",
        "01040004000631c9",
        "016828a100ff7801",
        "016600010006d800",
    ]

    def test_captured_frames(self):
        for text in self.CAPTURED:
            raw = bytes.fromhex(text)
            with self.subTest(frame=text):
                self.assertEqual(crc16(raw, len(raw) - 2), raw[-2] | (raw[-1] << 8))

    def test_length_defaults_to_whole_buffer(self):
        raw = bytes.fromhex("01044e740001")
        self.assertEqual(crc16(raw), crc16(raw + b"\xaa\xbb", 6))

    def test_empty_input_returns_initial_value(self):
        self.assertEqual(crc16(b""), 0xFFFF)

    def test_single_bit_flip_changes_crc(self):
        rng = random.Random(1234)
        for _ in range(50):
            data = bytearray(rng.randrange(256) for _ in range(rng.randint(1, 32)))
            original = crc16(bytes(data))
            bit = rng.randrange(len(data) * 8)
            data[bit // 8] ^= 1 << (bit % 8)
            self.assertNotEqual(crc16(bytes(data)), original)


class TestFrameCodec(unittest.TestCase):
    def test_encode_request_matches_capture(self):
        self.assertEqual(encode_request(1, 0x04, 20084, 1), bytes.fromhex("01044e74000166f8"))
        self.assertEqual(encode_request(1, 0x03, 10001, 101), bytes.fromhex("010327110065df50"))

    def test_encode_command_matches_capture(self):
        frame = encode_command(1, b"\x68\x27\x40", b"\x00\x05")
        self.assertEqual(frame, bytes.fromhex("016827400005ab60"))

    def test_encode_command_rejects_empty_header(self):
        with self.assertRaises(InvalidArgumentError):
            encode_command(1, b"", b"\x00\x01")

    def test_encode_request_rejects_out_of_range(self):
        with self.assertRaises(InvalidArgumentError):
            encode_request(1, 0x04, 0x10000, 1)
        with self.assertRaises(InvalidArgumentError):
            encode_request(256, 0x04, 1, 1)

    def test_request_round_trip(self):
        raw = encode_request(7, 0x04, 0x1234, 0x0056)
        frame = decode_frame(raw)
        self.assertEqual(frame.slave_address, 7)
        self.assertEqual(frame.function_code, 0x04)
        self.assertEqual(struct.unpack(">HH", frame.data), (0x1234, 0x0056))
        self.assertTrue(frame.crc_valid)
        self.assertFalse(frame.is_exception)

    def test_short_frame_is_malformed(self):
        with self.assertRaises(MalformedFrameError):
            decode_frame(b"\x01\x04\x00")
        with self.assertRaises(MalformedFrameError):
            decode_frame(b"")

    def test_minimum_frame_has_empty_data(self):
        body = b"\x01\x04"
        frame = decode_frame(body + struct.pack("<H", crc16(body)))
        self.assertEqual(frame.data, b"")
        self.assertTrue(frame.crc_valid)

    def test_bad_crc_is_reported_not_raised(self):
        raw = bytearray(bytes.fromhex("0104020001" "78f0"))
        self.assertTrue(decode_frame(bytes(raw)).crc_valid)
        raw[-1] ^= 0xFF
        frame = decode_frame(bytes(raw))
        self.assertFalse(frame.crc_valid)
        self.assertEqual(frame.data, b"\x02\x00\x01")

    def test_exception_frame(self):
        body = b"\x01\x84\x02"
        frame = decode_frame(body + struct.pack("<H", crc16(body)))
        self.assertTrue(frame.is_exception)
        self.assertEqual(frame.exception_code, 0x02)


class TestExtractRegisters(unittest.TestCase):
    def _frame(self, data: bytes) -> ModbusFrame:
        return ModbusFrame(slave_address=1, function_code=0x04, data=data, crc=0, crc_valid=True)

    def test_prefixed_payload(self):
        pairs = struct.pack(">3H", 0x0102, 0xFFFF, 0x0000)
        registers = extract_registers(self._frame(bytes([len(pairs)]) + pairs))
        self.assertEqual(registers, [0x0102, 0xFFFF, 0x0000])

    def test_unprefixed_payload_gives_same_values(self):
        pairs = struct.pack(">3H", 0x0102, 0xFFFF, 0x0000)
        prefixed = extract_registers(self._frame(bytes([len(pairs)]) + pairs))
        self.assertEqual(extract_registers(self._frame(pairs)), prefixed)
        self.assertEqual(extract_registers(self._frame(pairs), byte_count_prefixed=False), prefixed)

    def test_leading_byte_not_matching_length_is_data(self):
        registers = extract_registers(self._frame(b"\x00\x01\x00\x06"))
        self.assertEqual(registers, [1, 6])

    def test_forced_prefix_strips_mismatched_count(self):
        # Truncated response: the byte count says 6 but only 4 bytes arrived.
        registers = extract_registers(self._frame(b"\x06\x00\x01\x00\x02"), byte_count_prefixed=True)
        self.assertEqual(registers, [1, 2])

    def test_short_or_empty_payload(self):
        self.assertEqual(extract_registers(self._frame(b"")), [])
        self.assertEqual(extract_registers(self._frame(b"\x05")), [])


if __name__ == "__main__":
    unittest.main()

"""MODBUS RTU frame construction, parsing and register extraction."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Optional

from .crc import crc16
from .errors import InvalidArgumentError, MalformedFrameError


# MODBUS function code constants
FC_READ_HOLDING_REGISTERS = 0x03
FC_READ_INPUT_REGISTERS = 0x04
FC_ALARM_HISTORY = 0x66
FC_VENDOR_COMMAND = 0x68

EXCEPTION_BIT = 0x80

# Smallest frame on the wire: address, function code and two CRC bytes.
MIN_FRAME_LENGTH = 4


@dataclass(frozen=True)
class ModbusFrame:
	"""A parsed MODBUS RTU frame.

	``crc_valid`` is only a report: frames with a bad checksum are still
	returned so that callers can choose whether to discard them.
	"""

	slave_address: int
	function_code: int
	data: bytes = b""
	crc: int = 0
	crc_valid: bool = False

	@property
	def is_exception(self) -> bool:
		return bool(self.function_code & EXCEPTION_BIT)

	@property
	def exception_code(self) -> Optional[int]:
		if not self.is_exception or not self.data:
			return None
		return self.data[0]


def _check_byte(value: int, what: str) -> None:
	if not (0 <= value <= 0xFF):
		raise InvalidArgumentError(f"{what} {value} out of range [0, 255]")


def _check_word(value: int, what: str) -> None:
	if not (0 <= value <= 0xFFFF):
		raise InvalidArgumentError(f"{what} {value} out of range [0, 65535]")


def _append_crc(body: bytes) -> bytes:
	return body + struct.pack("<H", crc16(body))


def encode_request(slave: int, function_code: int, start_register: int, count: int) -> bytes:
	"""Build a register read request: header, start, count and CRC."""

	_check_byte(slave, "slave address")
	_check_byte(function_code, "function code")
	_check_word(start_register, "start register")
	_check_word(count, "register count")
	return _append_crc(struct.pack(">BBHH", slave, function_code, start_register, count))


def encode_command(slave: int, header: bytes, payload: bytes = b"") -> bytes:
	"""Build a vendor command frame from a raw *header* and *payload*.

	The header starts with the function code (for example ``68 27 40``).
	"""

	_check_byte(slave, "slave address")
	if not header:
		raise InvalidArgumentError("Command header must not be empty")
	return _append_crc(bytes([slave]) + bytes(header) + bytes(payload))


def decode_frame(raw: bytes) -> ModbusFrame:
	"""Split *raw* into its fields and check the trailing CRC."""

	if raw is None or len(raw) < MIN_FRAME_LENGTH:
		size = 0 if raw is None else len(raw)
		raise MalformedFrameError(f"Frame too short: {size} bytes, need at least {MIN_FRAME_LENGTH}")

	raw = bytes(raw)
	received = raw[-2] | (raw[-1] << 8)
	return ModbusFrame(
		slave_address=raw[0],
		function_code=raw[1],
		data=raw[2:-2],
		crc=received,
		crc_valid=received == crc16(raw, len(raw) - 2),
	)


def extract_registers(frame: ModbusFrame, byte_count_prefixed: Optional[bool] = None) -> List[int]:
	"""Return the frame payload as big-endian 16-bit registers.

	With ``byte_count_prefixed=None`` the leading byte is treated as a MODBUS
	byte count only when it equals ``len(data) - 1``. Passing ``True`` always
	strips it (read responses for 0x03/0x04 carry one); ``False`` never does.
	A trailing odd byte is ignored.
	"""

	data = frame.data
	if not data or len(data) < 2:
		return []

	if byte_count_prefixed is None:
		offset = 1 if data[0] == len(data) - 1 else 0
	else:
		offset = 1 if byte_count_prefixed else 0

	count = (len(data) - offset) // 2
	return [(data[offset + i * 2] << 8) | data[offset + i * 2 + 1] for i in range(count)]


__all__ = [
	"FC_READ_HOLDING_REGISTERS",
	"FC_READ_INPUT_REGISTERS",
	"FC_ALARM_HISTORY",
	"FC_VENDOR_COMMAND",
	"MIN_FRAME_LENGTH",
	"ModbusFrame",
	"encode_request",
	"encode_command",
	"decode_frame",
	"extract_registers",
]

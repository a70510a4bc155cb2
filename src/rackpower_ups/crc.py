"""MODBUS RTU CRC16 (reflected polynomial 0xA001)."""

from __future__ import annotations

from typing import Optional


def crc16(data: bytes, length: Optional[int] = None) -> int:
	"""Compute the MODBUS RTU CRC16 over the first *length* bytes of *data*.

	The result is returned as an integer; on the wire it is sent little-endian.
	An empty span yields the initial value 0xFFFF.
	"""

	if length is None:
		length = len(data)
	crc = 0xFFFF
	for byte in data[:length]:
		crc ^= byte
		for _ in range(8):
			if crc & 0x0001:
				crc = (crc >> 1) ^ 0xA001
			else:
				crc >>= 1
	return crc & 0xFFFF


__all__ = ["crc16"]

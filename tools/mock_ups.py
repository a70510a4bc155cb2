#!/usr/bin/env python3
"""Mock RackPower UPS speaking MODBUS RTU over a TCP socket.

Clients connect with ``pyserial``'s ``socket://`` URL. Responses can be split
into small delayed chunks to imitate a serial line that delivers bytes in
bursts, which exercises the client's adaptive reader.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import struct
import threading
from typing import Dict, List, Optional, Tuple


def _crc16(data: bytes) -> int:
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc & 0xFFFF


# Every request this dialect uses is 8 bytes: unit, fc, 4 payload bytes, CRC.
_REQUEST_LENGTH = 8


def _ascii_registers(text: str) -> List[int]:
    raw = text.encode("ascii").ljust(8, b"\x00")[:8]
    return [struct.unpack(">H", raw[i : i + 2])[0] for i in range(0, 8, 2)]


class UpsState:
    """Thread-safe register image of a healthy 10 kVA unit on mains power."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.holding: Dict[int, int] = {10011: 32}
        for offset, value in enumerate(_ascii_registers("RP10KVA")):
            self.holding[10072 + offset] = value

        self.inputs: Dict[int, int] = {
            1: 1,  # output on inverter
            2: 1,  # battery connected
            3: 1,  # switches normal
            20001: 2301,
            20007: 5000,
            20013: 2298,
            20019: 5000,
            20025: 2300,
            20031: 5000,
            20037: 3200,
            20040: 2900,
            20046: 320,
            20050: 4080,
            20054: 251,
            20055: 420,
            20056: 1000,
            20084: 2,
            20096: 230,
            20097: 50,
            20098: 230,
            20099: 50,
            20101: 10000,
            20103: 3800,
            20107: 15,
            20109: 2300,
            20131: 412,
            20134: 398,
            20138: 3,
            20139: 2,
            20140: 15,
        }
        self.backlight_minutes: Optional[int] = None
        self.commands: List[bytes] = []

    def read(self, function: int, address: int, count: int) -> List[int]:
        with self._lock:
            table = self.holding if function == 0x03 else self.inputs
            return [table.get(address + i, 0) for i in range(count)]

    def record_command(self, frame: bytes) -> None:
        with self._lock:
            self.commands.append(frame)
            if frame[1:4] == b"\x68\x27\x40":
                self.backlight_minutes = struct.unpack(">H", frame[4:6])[0]


def _parse_rtu_frame(frame: bytes) -> Tuple[int, int, bytes]:
    if len(frame) < 4:
        raise ValueError("RTU frame too short")
    if _crc16(frame[:-2]) != (frame[-2] | (frame[-1] << 8)):
        raise ValueError("RTU CRC mismatch")
    return frame[0], frame[1], frame[2:-2]


def _build_rtu_response(unit: int, function: int, payload: bytes) -> bytes:
    body = bytes([unit, function]) + payload
    return body + struct.pack("<H", _crc16(body))


def process_request(state: UpsState, unit_id: int, frame: bytes) -> Optional[bytes]:
    try:
        unit, function, payload = _parse_rtu_frame(frame)
    except ValueError as exc:
        logging.debug("Dropping request: %s", exc)
        return None
    if unit != unit_id:
        return None

    if function in (0x03, 0x04):
        address, count = struct.unpack(">HH", payload[:4])
        registers = state.read(function, address, count)
        data = bytearray([len(registers) * 2])
        for value in registers:
            data += struct.pack(">H", value)
        return _build_rtu_response(unit, function, bytes(data))

    if function in (0x66, 0x68):
        state.record_command(frame)
        return frame

    # Illegal function
    return _build_rtu_response(unit, function | 0x80, b"\x01")


async def run_server(state: UpsState, host: str, port: int, unit_id: int, chunk: int, chunk_delay: float) -> None:
    async def handle_client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        logging.info("Client connected: %s", peer)
        buffer = bytearray()
        try:
            while True:
                data = await reader.read(256)
                if not data:
                    break
                buffer.extend(data)
                while len(buffer) >= _REQUEST_LENGTH:
                    frame = bytes(buffer[:_REQUEST_LENGTH])
                    del buffer[:_REQUEST_LENGTH]
                    response = process_request(state, unit_id, frame)
                    if not response:
                        continue
                    step = chunk if chunk > 0 else len(response)
                    for idx in range(0, len(response), step):
                        writer.write(response[idx : idx + step])
                        await writer.drain()
                        if chunk_delay:
                            await asyncio.sleep(chunk_delay)
        except asyncio.CancelledError:
            raise
        except ConnectionError as exc:
            logging.debug("Client error: %s", exc)
        finally:
            writer.close()
            logging.info("Client disconnected: %s", peer)

    server = await asyncio.start_server(handle_client, host, port)
    logging.info("Mock RackPower UPS on %s:%s (use socket://)", host, port)
    async with server:
        await server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock RackPower UPS for integration tests")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=6300, help="TCP port")
    parser.add_argument("--unit", type=int, default=1, help="MODBUS slave address")
    parser.add_argument("--chunk", type=int, default=0, help="Split responses into chunks of this many bytes")
    parser.add_argument("--chunk-delay", type=float, default=0.0, help="Seconds between response chunks")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        asyncio.run(run_server(UpsState(), args.host, args.port, args.unit, args.chunk, args.chunk_delay))
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        logging.info("Mock UPS stopped")


if __name__ == "__main__":
    main()

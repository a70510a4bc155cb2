"""Byte transports carrying MODBUS RTU frames to the UPS."""

from __future__ import annotations

import importlib
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .errors import TransportError


_LOG = logging.getLogger(__name__)

_VALID_PARITY = {"N", "E", "O", "M", "S"}
_ALLOWED_STOPBITS = {1, 1.5, 2}


class Transport(ABC):
	"""Full-duplex byte stream used by the client.

	Every call must return within a bounded time; the serial implementation
	relies on pyserial's read and write timeouts for that.
	"""

	def open(self) -> None:
		"""Open the underlying connection if it is not already open."""

	def close(self) -> None:
		"""Release the underlying connection."""

	@abstractmethod
	def is_open(self) -> bool:
		"""Return True when the transport can carry traffic."""

	@abstractmethod
	def write(self, data: bytes) -> int:
		"""Send *data* and return the number of bytes written."""

	@abstractmethod
	def bytes_available(self) -> int:
		"""Return the number of received bytes waiting to be read."""

	@abstractmethod
	def read(self, max_len: int) -> bytes:
		"""Read up to *max_len* bytes that are already buffered."""

	def reset_input_buffer(self) -> None:
		"""Discard unread input (stale bytes from an earlier exchange)."""

	def __enter__(self) -> "Transport":
		self.open()
		return self

	def __exit__(self, *exc_info: Any) -> None:
		self.close()


class SerialTransport(Transport):
	"""pyserial-backed transport; accepts device names and pyserial URLs."""

	def __init__(
		self,
		port: str,
		baudrate: int = 9600,
		bytesize: int = 8,
		parity: str = "N",
		stopbits: float = 1,
		timeout: float = 2.0,
		write_timeout: Optional[float] = None,
	) -> None:
		if not port:
			raise TransportError("Serial transport requires a port")
		parity = str(parity).upper()
		if parity not in _VALID_PARITY:
			raise TransportError(f"Invalid parity {parity!r}; expected one of {_VALID_PARITY}")
		if stopbits not in _ALLOWED_STOPBITS:
			raise TransportError("stopbits must be one of 1, 1.5, 2")

		self._open_kwargs: Dict[str, Any] = {
			"baudrate": int(baudrate),
			"bytesize": int(bytesize),
			"parity": parity,
			"stopbits": stopbits,
			"timeout": float(timeout),
			"write_timeout": float(timeout if write_timeout is None else write_timeout),
		}
		self._port = self.normalize_port(str(port))
		self._serial: Optional[Any] = None
		self._serial_module: Optional[Any] = None

	@property
	def port(self) -> str:
		return self._port

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	def open(self) -> None:
		if self.is_open():
			return
		module = self._resolve_serial_module()
		factory = getattr(module, "serial_for_url", None) or getattr(module, "Serial", None)
		if factory is None:
			raise TransportError("pyserial module does not expose serial_for_url or Serial")
		try:
			serial_obj = factory(self._port, **self._open_kwargs)
		except Exception as exc:
			raise TransportError(f"Failed to open serial port {self._port!r}: {exc}") from exc
		self._serial = serial_obj
		_LOG.debug("Opened serial port %s with %s", self._port, self._open_kwargs)
		self.reset_input_buffer()

	def close(self) -> None:
		serial_obj = self._serial
		self._serial = None
		if serial_obj is None:
			return
		try:
			serial_obj.close()
		except Exception:  # pragma: no cover - close failures only matter for logging
			_LOG.debug("Serial close failed for port %s", self._port, exc_info=True)

	def is_open(self) -> bool:
		serial_obj = self._serial
		return serial_obj is not None and bool(getattr(serial_obj, "is_open", True))

	# ------------------------------------------------------------------
	# I/O
	# ------------------------------------------------------------------

	def write(self, data: bytes) -> int:
		serial_obj = self._require_open()
		try:
			written = serial_obj.write(data)
			if hasattr(serial_obj, "flush"):
				serial_obj.flush()
		except Exception as exc:
			raise TransportError(f"Serial write failed on {self._port!r}: {exc}") from exc
		if written is not None and written != len(data):
			raise TransportError(f"Incomplete serial write: {written} of {len(data)} bytes")
		return len(data)

	def bytes_available(self) -> int:
		serial_obj = self._require_open()
		try:
			return int(serial_obj.in_waiting)
		except Exception as exc:
			raise TransportError(f"Serial status query failed on {self._port!r}: {exc}") from exc

	def read(self, max_len: int) -> bytes:
		serial_obj = self._require_open()
		try:
			return bytes(serial_obj.read(max_len))
		except Exception as exc:
			raise TransportError(f"Serial read failed on {self._port!r}: {exc}") from exc

	def reset_input_buffer(self) -> None:
		serial_obj = self._serial
		if serial_obj is None or not hasattr(serial_obj, "reset_input_buffer"):
			return
		try:
			serial_obj.reset_input_buffer()
		except Exception:  # pragma: no cover - stale input is harmless
			_LOG.debug("Serial input reset failed for port %s", self._port, exc_info=True)

	# ------------------------------------------------------------------
	# Helpers
	# ------------------------------------------------------------------

	def _require_open(self) -> Any:
		if not self.is_open():
			raise TransportError("Serial port is not open")
		return self._serial

	def _resolve_serial_module(self) -> Any:
		if self._serial_module is not None:
			return self._serial_module
		try:
			module = importlib.import_module("serial")
		except ImportError as exc:  # pragma: no cover - missing dependency
			raise TransportError("pyserial is required for the serial transport") from exc
		self._serial_module = module
		return module

	@staticmethod
	def normalize_port(port: str) -> str:
		"""Normalize platform-specific serial port names."""

		if "://" in port:
			# URL-style transports (socket://, loop://, etc.) must remain intact
			return port
		if os.name == "nt":
			if port.startswith("\\\\.\\"):
				return port
			return f"\\\\.\\{port}"
		return port


__all__ = ["Transport", "SerialTransport"]

"""Adaptive response reader for transports that deliver bytes in bursts."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .errors import ResponseTimeoutError, TransportError
from .transport import Transport


_LOG = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.010


class AdaptiveReader:
	"""Drain a response once the transport's inbound byte count settles.

	Each read first sleeps ``base_delay`` so the device can start answering,
	then polls :meth:`Transport.bytes_available` every ``poll_interval``
	seconds for at most ``max_extra_delay``. Two consecutive polls reporting
	the same non-zero count mean the response is complete. Reads that needed
	more than one polling step are counted as buffer under-runs; the counter
	is diagnostic only.
	"""

	def __init__(
		self,
		transport: Transport,
		poll_interval: float = DEFAULT_POLL_INTERVAL,
		sleep: Callable[[float], None] = time.sleep,
	) -> None:
		if poll_interval <= 0:
			raise ValueError("poll_interval must be positive")
		self._transport = transport
		self._poll_interval = poll_interval
		self._sleep = sleep
		self.buffer_underruns = 0
		self.underrun_operation: Optional[str] = None

	def read(self, base_delay: float, max_extra_delay: float, operation: str = "") -> bytes:
		transport = self._transport
		if not transport.is_open():
			raise TransportError("Transport is not open")

		if base_delay > 0:
			self._sleep(base_delay)

		max_steps = max(int(round(max_extra_delay / self._poll_interval)), 0)
		steps = 0
		last_count = -1
		while steps < max_steps:
			count = transport.bytes_available()
			if count > 0 and count == last_count:
				break
			last_count = count
			self._sleep(self._poll_interval)
			steps += 1

		if steps > 1:
			self.buffer_underruns += 1
			self.underrun_operation = operation
			_LOG.debug(
				"Buffer under-run in %s: waited %d extra polls (total %d)",
				operation or "<unnamed>",
				steps,
				self.buffer_underruns,
			)

		available = transport.bytes_available()
		if available <= 0:
			raise ResponseTimeoutError(f"No response from UPS ({operation or 'read'})")

		data = transport.read(available)
		_LOG.debug("RX %s: %s", operation or "<unnamed>", data.hex())
		return data


__all__ = ["AdaptiveReader", "DEFAULT_POLL_INTERVAL"]

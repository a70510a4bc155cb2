"""Exception hierarchy shared by the RackPower UPS client."""

from __future__ import annotations

from typing import Optional


class UpsError(RuntimeError):
    """Base class for every failure raised by this package."""


class TransportError(UpsError):
    """Raised when the byte transport cannot be opened, written or read."""


class ConfigurationError(UpsError):
    """Raised when configuration parsing fails."""


class InvalidArgumentError(UpsError, ValueError):
    """Raised for malformed command construction or unsupported control values."""


class MalformedFrameError(UpsError, ValueError):
    """Raised when a raw response is too short to be a MODBUS RTU frame."""


class CrcMismatchError(UpsError):
    """Raised by the client when its policy rejects a frame with a bad CRC."""


class ResponseTimeoutError(UpsError, TimeoutError):
    """Raised when the device sent nothing within the adaptive read window."""


class DeviceExceptionError(UpsError):
    """Raised when the device answers with a MODBUS exception response."""

    def __init__(self, function_code: int, exception_code: Optional[int]) -> None:
        code = "n/a" if exception_code is None else f"0x{exception_code:02X}"
        super().__init__(f"MODBUS exception: function=0x{function_code:02X} code={code}")
        self.function_code = function_code
        self.exception_code = exception_code


class UnexpectedLengthError(UpsError):
    """Raised when a response holds fewer registers than its query group needs."""

    def __init__(self, group: str, expected: int, actual: int, unit: str = "registers") -> None:
        super().__init__(
            f"{group}: unexpected register length, expected at least {expected} {unit}, got {actual}"
        )
        self.group = group
        self.expected = expected
        self.actual = actual


__all__ = [
    "UpsError",
    "TransportError",
    "ConfigurationError",
    "InvalidArgumentError",
    "MalformedFrameError",
    "CrcMismatchError",
    "ResponseTimeoutError",
    "DeviceExceptionError",
    "UnexpectedLengthError",
]

"""Exception hierarchy for the ISP programmer.

Every failure the protocol engine can report derives from ``IspError`` so
front ends can catch one type and report the failing step.
"""

from __future__ import annotations


class IspError(Exception):
    """Base exception for all ISP-related errors."""


class TransportError(IspError):
    """Raised when the serial port cannot be opened, written or read."""


class IspTimeout(IspError):
    """Raised when no reply arrives within an operation's timeout budget."""


class ChecksumMismatch(IspError):
    """Raised when an ack's checksum differs from the command's checksum."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Bad checksum 0x{actual:08X}, expected 0x{expected:08X}")
        self.expected = expected
        self.actual = actual


class SequenceMismatch(IspError):
    """Raised when an ack does not answer the last command sent."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Bad reply packet number {actual}, expected {expected}")
        self.expected = expected
        self.actual = actual


class MalformedReply(IspError):
    """Raised when a reply frame is short or incomplete."""


class UnsupportedDevice(IspError):
    """Raised when the device reports an identifier we cannot program."""

    def __init__(self, device_id: int) -> None:
        super().__init__(f"Unknown device 0x{device_id:04X}")
        self.device_id = device_id


class EmptyImage(IspError):
    """Raised when asked to flash a zero-length image."""


class ImageTooLarge(IspError):
    """Raised when the image does not fit in the device's APROM."""

    def __init__(self, size: int, capacity: int) -> None:
        super().__init__(
            f"Image is {size} bytes but APROM holds only {capacity} bytes"
        )
        self.size = size
        self.capacity = capacity


class ShortRead(IspError):
    """Raised when the image source could not be read completely."""


class StepFailed(IspError):
    """An orchestration step failed; wraps the underlying error."""

    def __init__(self, step: str, cause: IspError) -> None:
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause

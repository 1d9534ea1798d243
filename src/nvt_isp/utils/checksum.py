"""Packet checksum used by the Nuvoton ISP bootloader.

The checksum is the plain unsigned sum of every byte of a command frame,
truncated to 32 bits. The device echoes it back in the first field of
its ack.
"""

from __future__ import annotations

CHECKSUM_MASK = 0xFFFFFFFF


def checksum(data: bytes) -> int:
    """Return the 32-bit wrapping byte sum of ``data``."""
    return sum(data) & CHECKSUM_MASK

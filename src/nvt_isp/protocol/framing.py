"""Fixed-size packet framing for the Nuvoton ISP bootloader.

Every packet is exactly 64 bytes in both directions. All multi-byte
integers are little-endian regardless of host byte order.

Command layout::

    +-----------+---------------+------------------------------+
    |  Opcode   | Packet number |           Payload            |
    |  u32 LE   |    u32 LE     |  56 bytes, zero padded       |
    +-----------+---------------+------------------------------+

Ack layout::

    +-----------+---------------+------------------------------+
    | Checksum  | Packet number |           Payload            |
    |  u32 LE   |    u32 LE     |  56 bytes, reply dependent   |
    +-----------+---------------+------------------------------+

The ack checksum is the sum of the bytes of the *command* the device
received, not of the ack itself.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..errors import MalformedReply

PACKET_SIZE = 64
HEADER_SIZE = 8
PAYLOAD_SIZE = PACKET_SIZE - HEADER_SIZE  # 56

_HEADER = struct.Struct("<II")
_PACKNO_OFFSET = 4


@dataclass
class CommandFrame:
    """A decoded host-to-device packet."""

    opcode: int
    packet_number: int
    payload: bytes

    def __repr__(self) -> str:
        used = self.payload.rstrip(b"\x00")
        return (
            f"CommandFrame(opcode=0x{self.opcode:02X}, "
            f"packet_number={self.packet_number}, "
            f"payload={used.hex(' ') if used else '(empty)'})"
        )


@dataclass
class RawAck:
    """The fixed fields of a device-to-host packet, payload still undecoded."""

    checksum: int
    packet_number: int
    payload: bytes


def build_frame(opcode: int, packet_number: int = 0, payload: bytes = b"") -> bytearray:
    """Build a 64-byte command packet.

    Args:
        opcode: Command code placed in the first 32-bit word.
        packet_number: Sequence number; usually overwritten when the
            frame is stamped just before sending.
        payload: Variant-specific bytes, at most 56.

    Returns:
        A mutable 64-byte buffer so the packet number can be stamped.
    """
    if len(payload) > PAYLOAD_SIZE:
        raise ValueError(
            f"Payload must be at most {PAYLOAD_SIZE} bytes, got {len(payload)}"
        )
    frame = bytearray(PACKET_SIZE)
    _HEADER.pack_into(frame, 0, opcode, packet_number)
    frame[HEADER_SIZE : HEADER_SIZE + len(payload)] = payload
    return frame


def stamp_packet_number(frame: bytearray, packet_number: int) -> None:
    """Overwrite the packet-number field of a command packet in place."""
    struct.pack_into("<I", frame, _PACKNO_OFFSET, packet_number)


def parse_command(data: bytes) -> CommandFrame:
    """Split a 64-byte command packet into its fields."""
    if len(data) < PACKET_SIZE:
        raise MalformedReply(
            f"Command packet must be {PACKET_SIZE} bytes, got {len(data)}"
        )
    opcode, packet_number = _HEADER.unpack_from(data)
    return CommandFrame(
        opcode=opcode,
        packet_number=packet_number,
        payload=bytes(data[HEADER_SIZE:PACKET_SIZE]),
    )


def parse_ack_header(data: bytes) -> RawAck:
    """Split a 64-byte ack packet into checksum, packet number and payload.

    Raises:
        MalformedReply: If fewer than 64 bytes were received.
    """
    if len(data) < PACKET_SIZE:
        raise MalformedReply(
            f"Short reply: got {len(data)} of {PACKET_SIZE} bytes"
        )
    checksum, packet_number = _HEADER.unpack_from(data)
    return RawAck(
        checksum=checksum,
        packet_number=packet_number,
        payload=bytes(data[HEADER_SIZE:PACKET_SIZE]),
    )


def build_ack(checksum: int, packet_number: int, payload: bytes = b"") -> bytes:
    """Build a 64-byte ack packet the way the bootloader lays it out."""
    if len(payload) > PAYLOAD_SIZE:
        raise ValueError(
            f"Payload must be at most {PAYLOAD_SIZE} bytes, got {len(payload)}"
        )
    return _HEADER.pack(checksum, packet_number) + payload.ljust(PAYLOAD_SIZE, b"\x00")

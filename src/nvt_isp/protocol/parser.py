"""Ack decoding: typed reply variants for each kind of command."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..errors import ChecksumMismatch
from ..models.config import ConfigBytes
from .commands import Command
from .framing import parse_ack_header


@dataclass(frozen=True)
class EmptyReply:
    """Ack with no meaningful payload."""

    @classmethod
    def from_payload(cls, payload: bytes) -> EmptyReply:
        return cls()


@dataclass(frozen=True)
class FwVersionReply:
    """GET_FWVER reply."""

    version: int

    @classmethod
    def from_payload(cls, payload: bytes) -> FwVersionReply:
        return cls(version=payload[0])


@dataclass(frozen=True)
class DeviceIdReply:
    """GET_DEVICEID reply."""

    device_id: int

    @classmethod
    def from_payload(cls, payload: bytes) -> DeviceIdReply:
        return cls(device_id=struct.unpack_from("<I", payload)[0])


@dataclass(frozen=True)
class ConfigReply:
    """READ_CONFIG reply."""

    config: ConfigBytes

    @classmethod
    def from_payload(cls, payload: bytes) -> ConfigReply:
        return cls(config=ConfigBytes.from_bytes(payload))


@dataclass(frozen=True)
class FlashModeReply:
    """GET_FLASHMODE reply."""

    mode: int

    @classmethod
    def from_payload(cls, payload: bytes) -> FlashModeReply:
        return cls(mode=struct.unpack_from("<I", payload)[0])


Reply = EmptyReply | FwVersionReply | DeviceIdReply | ConfigReply | FlashModeReply

REPLY_TYPES: dict[Command, type] = {
    Command.GET_FWVER: FwVersionReply,
    Command.GET_DEVICEID: DeviceIdReply,
    Command.READ_CONFIG: ConfigReply,
    Command.GET_FLASHMODE: FlashModeReply,
}


def reply_type_for(command: Command) -> type:
    """Return the reply class the device answers ``command`` with."""
    return REPLY_TYPES.get(command, EmptyReply)


@dataclass
class AckFrame:
    """A decoded device-to-host packet."""

    checksum: int
    packet_number: int
    reply: Reply

    def __repr__(self) -> str:
        return (
            f"AckFrame(checksum=0x{self.checksum:08X}, "
            f"packet_number={self.packet_number}, reply={self.reply!r})"
        )


def decode_ack(
    data: bytes,
    reply_type: type = EmptyReply,
    expected_checksum: int | None = None,
) -> AckFrame:
    """Decode a 64-byte ack into an ``AckFrame``.

    Args:
        data: Bytes read from the device.
        reply_type: Reply class expected for the command that was sent.
        expected_checksum: Checksum of that command; when given the ack's
            checksum field must match it.

    Raises:
        MalformedReply: If ``data`` is shorter than a full packet.
        ChecksumMismatch: If the echoed checksum differs.
    """
    raw = parse_ack_header(data)
    if expected_checksum is not None and raw.checksum != expected_checksum:
        raise ChecksumMismatch(expected=expected_checksum, actual=raw.checksum)
    return AckFrame(
        checksum=raw.checksum,
        packet_number=raw.packet_number,
        reply=reply_type.from_payload(raw.payload),
    )

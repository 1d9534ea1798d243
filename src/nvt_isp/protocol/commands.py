"""ISP command codes and typed command payloads.

Each payload variant knows its own byte layout inside the 56-byte
payload region of a command packet; nothing is shared between
variants.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar

from ..models.config import ConfigBytes
from .framing import PAYLOAD_SIZE, build_frame


class Command(IntEnum):
    """Command opcodes understood by the ISP bootloader."""

    CONTINUATION = 0x00  # follow-up block of an APROM update
    CONNECT = 0xAE
    ERASE_ALL = 0xA3
    GET_DEVICEID = 0xB1
    GET_FLASHMODE = 0xCA
    GET_FWVER = 0xA6
    READ_CONFIG = 0xA2
    RESEND_PACKET = 0xFF
    RESET = 0xAD
    RUN_APROM = 0xAB
    RUN_LDROM = 0xAC
    SYNC_PACKNO = 0xA4
    UPDATE_APROM = 0xA0
    UPDATE_CONFIG = 0xA1
    UPDATE_DATAFLASH = 0xC3
    WRITE_CHECKSUM = 0xC9


@dataclass(frozen=True)
class Payload:
    """A payload with no content; the region is all zeroes."""

    def to_bytes(self) -> bytes:
        return b""


EMPTY = Payload()


@dataclass(frozen=True)
class SyncPackno(Payload):
    """SYNC_PACKNO: tells the device which packet number to expect."""

    rn: int

    def to_bytes(self) -> bytes:
        return struct.pack("<I", self.rn)


@dataclass(frozen=True)
class UpdateAprom(Payload):
    """First block of an APROM update (up to 48 data bytes)."""

    DATA_SIZE: ClassVar[int] = 48

    start_addr: int
    total_length: int
    data: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        if len(self.data) > self.DATA_SIZE:
            raise ValueError(
                f"UPDATE_APROM carries at most {self.DATA_SIZE} bytes, got {len(self.data)}"
            )

    def to_bytes(self) -> bytes:
        return struct.pack("<II", self.start_addr, self.total_length) + self.data


@dataclass(frozen=True)
class UpdateApromContinuation(Payload):
    """Follow-up block of an APROM update (up to 56 data bytes)."""

    DATA_SIZE: ClassVar[int] = PAYLOAD_SIZE

    data: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        if len(self.data) > self.DATA_SIZE:
            raise ValueError(
                f"Continuation carries at most {self.DATA_SIZE} bytes, got {len(self.data)}"
            )

    def to_bytes(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class UpdateConfig(Payload):
    """UPDATE_CONFIG: the complete new configuration bytes."""

    config: ConfigBytes

    def to_bytes(self) -> bytes:
        return self.config.to_bytes()


def build_command(command: Command, payload: Payload = EMPTY) -> bytearray:
    """Build a 64-byte command packet with an unstamped packet number."""
    return build_frame(command.value, 0, payload.to_bytes())


def build_connect() -> bytearray:
    return build_command(Command.CONNECT)


def build_sync_packno(rn: int) -> bytearray:
    """Build a SYNC_PACKNO command carrying the packet number ``rn``."""
    return build_command(Command.SYNC_PACKNO, SyncPackno(rn=rn))


def build_update_config(config: ConfigBytes) -> bytearray:
    return build_command(Command.UPDATE_CONFIG, UpdateConfig(config=config))


def build_update_aprom(total_length: int, data: bytes, start_addr: int = 0) -> bytearray:
    """Build the first block of an APROM update.

    Args:
        total_length: Size of the whole image in bytes.
        data: Up to the first 48 bytes of the image.
        start_addr: APROM offset; the bootloader only supports 0.
    """
    return build_command(
        Command.UPDATE_APROM,
        UpdateAprom(start_addr=start_addr, total_length=total_length, data=data),
    )


def build_update_aprom_continuation(data: bytes) -> bytearray:
    """Build a follow-up block of an APROM update (opcode 0)."""
    return build_command(Command.CONTINUATION, UpdateApromContinuation(data=data))

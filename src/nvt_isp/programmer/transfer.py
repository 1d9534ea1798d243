"""APROM image transfer.

The image is cut into blocks that each fill one command packet. The first
block travels in an UPDATE_APROM packet together with the start address
and total length, leaving room for 48 data bytes; every later block uses
opcode 0 and carries up to 56 bytes. Blocks go out strictly one at a time,
each waiting for its ack.

A failed transfer is not resumed and may leave the APROM partly written.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..errors import EmptyImage, ImageTooLarge, ShortRead
from ..protocol.commands import (
    UpdateAprom,
    UpdateApromContinuation,
    build_update_aprom,
    build_update_aprom_continuation,
)
from .channel import CommandChannel
from .retry import COMMAND_POLICY, ReplyPolicy

logger = logging.getLogger(__name__)

FIRST_BLOCK_SIZE = UpdateAprom.DATA_SIZE  # 48
NEXT_BLOCK_SIZE = UpdateApromContinuation.DATA_SIZE  # 56


@dataclass(frozen=True)
class Block:
    """A slice of the image that fits in one packet."""

    offset: int
    size: int

    @property
    def first(self) -> bool:
        return self.offset == 0


def plan_blocks(image: bytes) -> list[Block]:
    """Split ``image`` into the blocks the transfer will send, in order."""
    blocks: list[Block] = []
    offset = 0
    while offset < len(image):
        limit = FIRST_BLOCK_SIZE if offset == 0 else NEXT_BLOCK_SIZE
        size = min(limit, len(image) - offset)
        blocks.append(Block(offset=offset, size=size))
        offset += size
    return blocks


def check_image(image: bytes, capacity: int) -> None:
    """Reject images that cannot be flashed.

    Raises:
        EmptyImage: If the image has no bytes.
        ImageTooLarge: If it exceeds ``capacity`` bytes.
    """
    if not image:
        raise EmptyImage("APROM image is empty")
    if len(image) > capacity:
        raise ImageTooLarge(size=len(image), capacity=capacity)


def build_block_frame(image: bytes, block: Block) -> bytearray:
    data = image[block.offset : block.offset + block.size]
    if block.first:
        return build_update_aprom(total_length=len(image), data=data)
    return build_update_aprom_continuation(data)


def load_image(path: str | Path) -> bytes:
    """Read a raw binary APROM image.

    Raises:
        ShortRead: If the file cannot be opened or read completely.
    """
    path = Path(path)
    try:
        with path.open("rb") as f:
            size = os.fstat(f.fileno()).st_size
            data = f.read(size)
    except OSError as e:
        raise ShortRead(f"Can't read {path}: {e}") from e
    if len(data) != size:
        raise ShortRead(f"Read {len(data)} of {size} bytes from {path}")
    return data


class FlashBlockTransfer:
    """Drive an image through the bootloader block by block."""

    def __init__(
        self,
        channel: CommandChannel,
        capacity: int,
        policy: ReplyPolicy = COMMAND_POLICY,
        progress: Callable[[int, int], None] | None = None,
    ) -> None:
        self._channel = channel
        self._capacity = capacity
        self._policy = policy
        self._progress = progress

    def run(self, image: bytes) -> int:
        """Send the whole image.

        Returns:
            Number of blocks sent.

        Raises:
            EmptyImage, ImageTooLarge: Before anything is sent.
            IspError: Any failure while sending aborts the transfer.
        """
        check_image(image, self._capacity)
        blocks = plan_blocks(image)
        done = 0
        for block in blocks:
            logger.debug(
                "Sending block of %d bytes, from offset 0x%x", block.size, block.offset
            )
            self._channel.transact(build_block_frame(image, block), policy=self._policy)
            done += block.size
            if self._progress is not None:
                self._progress(done, len(image))
        logger.info("Wrote %d bytes in %d blocks", done, len(blocks))
        return len(blocks)

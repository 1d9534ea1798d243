"""Packet-number bookkeeping.

The host stamps every command with a running packet number. The N76E003
bootloader answers command ``N`` with an ack numbered ``N + 1``, which
is also the number the host uses for its next command.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import SequenceMismatch
from .framing import stamp_packet_number

logger = logging.getLogger(__name__)

PACKNO_MASK = 0xFFFFFFFF
INITIAL_PACKET_NUMBER = 0x17  # arbitrary, any value works
ACK_PACKNO_OFFSET = 1


class SequenceTracker:
    """Owns the outgoing packet-number counter.

    Usage::

        tracker = SequenceTracker()
        tracker.stamp_and_advance(frame, transport.write)
        tracker.validate(ack)
    """

    def __init__(
        self,
        start: int = INITIAL_PACKET_NUMBER,
        ack_offset: int = ACK_PACKNO_OFFSET,
    ) -> None:
        self._next = start & PACKNO_MASK
        self._ack_offset = ack_offset
        self._last_sent: int | None = None

    @property
    def next_pkt_num(self) -> int:
        return self._next

    @property
    def last_sent(self) -> int | None:
        return self._last_sent

    @property
    def expected_reply(self) -> int | None:
        """Packet number the ack to the last command must carry."""
        if self._last_sent is None:
            return None
        return (self._last_sent + self._ack_offset) & PACKNO_MASK

    def stamp_and_advance(self, frame: bytearray, send: Callable[[bytes], object]) -> int:
        """Stamp ``frame`` with the current number, send it, then advance.

        The counter only moves once ``send`` has returned; if it raises the
        counter is left as it was.

        Returns:
            The packet number the frame was sent with.
        """
        number = self._next
        stamp_packet_number(frame, number)
        send(bytes(frame))
        self._last_sent = number
        self._next = (number + 1) & PACKNO_MASK
        return number

    def validate(self, ack) -> None:
        """Check that ``ack`` answers the last command sent.

        Raises:
            SequenceMismatch: On any other packet number.
        """
        expected = self.expected_reply
        if expected is None or ack.packet_number != expected:
            logger.debug(
                "Bad reply packet number %s vs. %s", ack.packet_number, expected
            )
            raise SequenceMismatch(
                expected=-1 if expected is None else expected,
                actual=ack.packet_number,
            )

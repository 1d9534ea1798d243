"""The single path between the programmer and the transport.

A transport is any object with ``write(data)``, ``read(size, timeout)``
and ``read_nonblocking(size)``, such as
:class:`~nvt_isp.transport.SerialConnection`.
"""

from __future__ import annotations

import logging

from ..errors import IspTimeout
from ..protocol.framing import PACKET_SIZE
from ..protocol.parser import AckFrame, EmptyReply, decode_ack
from ..protocol.sequence import SequenceTracker
from ..utils.checksum import checksum
from .retry import COMMAND_POLICY, ReplyPolicy

logger = logging.getLogger(__name__)


class CommandChannel:
    """Sends stamped commands and validates the acks that answer them.

    Keeps the protocol half of the session state: the packet-number
    counter, the checksum of the last command sent and the last ack.
    """

    def __init__(self, transport, tracker: SequenceTracker | None = None) -> None:
        self._transport = transport
        self._tracker = tracker or SequenceTracker()
        self._last_checksum: int | None = None
        self._last_ack: AckFrame | None = None

    @property
    def tracker(self) -> SequenceTracker:
        return self._tracker

    @property
    def last_checksum(self) -> int | None:
        return self._last_checksum

    @property
    def last_ack(self) -> AckFrame | None:
        return self._last_ack

    def _write(self, frame: bytes) -> None:
        self._last_checksum = checksum(frame)
        self._transport.write(frame)

    def send(self, frame: bytearray) -> int:
        """Stamp, checksum and write one command packet.

        Returns:
            The packet number the command went out with.
        """
        number = self._tracker.stamp_and_advance(frame, self._write)
        logger.debug(
            "Sent opcode 0x%02X as packet %d (checksum 0x%08X)",
            frame[0], number, self._last_checksum,
        )
        return number

    def receive(self, reply_type: type = EmptyReply, timeout: float = COMMAND_POLICY.timeout) -> AckFrame:
        """Read and validate the ack to the last command.

        Args:
            reply_type: Reply class to decode the payload with.
            timeout: Seconds to wait; 0 takes only what is already buffered.

        Raises:
            IspTimeout: If nothing arrived.
            MalformedReply: If only part of a packet arrived.
            ChecksumMismatch: If the echoed checksum is wrong.
            SequenceMismatch: If the packet number is wrong.
        """
        if timeout > 0:
            data = self._transport.read(PACKET_SIZE, timeout)
        else:
            data = self._transport.read_nonblocking(PACKET_SIZE)
        if not data:
            raise IspTimeout(f"No reply within {timeout:.2f}s")
        ack = decode_ack(data, reply_type, expected_checksum=self._last_checksum)
        self._tracker.validate(ack)
        self._last_ack = ack
        return ack

    def transact(
        self,
        frame: bytearray,
        reply_type: type = EmptyReply,
        policy: ReplyPolicy = COMMAND_POLICY,
    ) -> AckFrame:
        """Send one command and wait for its ack."""
        self.send(frame)
        return self.receive(reply_type, policy.timeout)

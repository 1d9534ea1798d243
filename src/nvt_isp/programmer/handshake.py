"""CONNECT handshake with the ISP bootloader.

After reset the bootloader listens briefly for a CONNECT packet before
jumping to the application. The host therefore keeps offering CONNECT,
one packet per 40 ms response window, until a valid ack comes back.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable

from ..errors import ChecksumMismatch, IspTimeout, MalformedReply, SequenceMismatch
from ..protocol.commands import build_connect
from ..protocol.parser import AckFrame, EmptyReply
from .channel import CommandChannel
from .retry import CONNECT_POLICY, ReplyPolicy

logger = logging.getLogger(__name__)

# An answer to an earlier probe, line noise or nothing at all
_PROBE_MISSES = (IspTimeout, MalformedReply, ChecksumMismatch, SequenceMismatch)


class HandshakeState(Enum):
    IDLE = "idle"
    PROBING = "probing"
    CONNECTED = "connected"


class ConnectHandshake:
    """Probe the device with CONNECT until it answers.

    Every CONNECT actually written advances the packet counter, so after
    ``n`` probes the counter has moved by ``n``. Transport errors are not
    retried.
    """

    def __init__(
        self,
        channel: CommandChannel,
        policy: ReplyPolicy = CONNECT_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._channel = channel
        self._policy = policy
        self._sleep = sleep
        self.state = HandshakeState.IDLE
        self.attempts = 0

    def run(self) -> AckFrame:
        """Probe until connected.

        Returns:
            The ack to the accepted CONNECT.

        Raises:
            IspTimeout: Only when the policy caps the number of probes and
                all of them went unanswered.
            TransportError: On any I/O failure.
        """
        self.state = HandshakeState.PROBING
        self.attempts = 0
        logger.info("Waiting for the device to enter ISP mode...")

        for attempt in self._policy.attempts():
            self.attempts = attempt
            self._channel.send(build_connect())
            self._sleep(self._policy.interval)
            try:
                ack = self._channel.receive(EmptyReply, self._policy.timeout)
            except _PROBE_MISSES as e:
                logger.debug("CONNECT probe %d unanswered: %s", attempt, e)
                continue

            self.state = HandshakeState.CONNECTED
            logger.info("Connected after %d probe(s)", attempt)
            return ack

        self.state = HandshakeState.IDLE
        raise IspTimeout(f"No answer to {self.attempts} CONNECT probes")

"""Reply policies: how long to wait for an ack and how often to re-offer a command.

Ordinary commands are sent once and wait a bounded time for their ack.
The CONNECT probe is the only command that is re-sent, and by default it
is re-sent forever: the target is usually being power-cycled by hand
while the probe runs, and the bootloader only listens for a short window
after reset.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Iterator

from ..config import COMMAND_TIMEOUT, CONNECT_INTERVAL


@dataclass(frozen=True)
class ReplyPolicy:
    """Timing for one kind of request.

    Attributes:
        timeout: Seconds to block waiting for an ack; 0 polls without blocking.
        interval: Seconds to pause after sending, before reading.
        max_attempts: How many times the request may be offered; ``None``
            means without limit.
    """

    timeout: float
    interval: float = 0.0
    max_attempts: int | None = 1

    def __post_init__(self) -> None:
        if self.timeout < 0 or self.interval < 0:
            raise ValueError("Timeouts and intervals must not be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    @property
    def unbounded(self) -> bool:
        return self.max_attempts is None

    def attempts(self) -> Iterator[int]:
        """Yield attempt numbers starting at 1."""
        if self.max_attempts is None:
            return itertools.count(1)
        return iter(range(1, self.max_attempts + 1))


COMMAND_POLICY = ReplyPolicy(timeout=COMMAND_TIMEOUT)
CONNECT_POLICY = ReplyPolicy(timeout=0.0, interval=CONNECT_INTERVAL, max_attempts=None)


def connect_policy(max_attempts: int | None = None) -> ReplyPolicy:
    """CONNECT probe policy, optionally capped at ``max_attempts`` probes."""
    return ReplyPolicy(timeout=0.0, interval=CONNECT_INTERVAL, max_attempts=max_attempts)

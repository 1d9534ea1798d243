"""Default settings for talking to the bootloader."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models.config import ConfigChange

# --- Serial port ---
DEFAULT_SERIAL_DEVICE = "/dev/ttyUSB0"
BAUD_RATE = 115200
WRITE_TIMEOUT = 5.0  # seconds

# --- Protocol timing ---
COMMAND_TIMEOUT = 5.0  # seconds to wait for an ack
CONNECT_INTERVAL = 0.040  # bootloader response window after CONNECT
DTR_PULSE = 0.001  # DTR low time used to reset the target

# --- Pass-through echo ---
PASSTHROUGH_CHUNK = 500
PASSTHROUGH_TIMEOUT = 1.0


@dataclass(frozen=True)
class SerialSettings:
    """Port parameters; the bootloader always runs at 115200 8N1."""

    port: str = DEFAULT_SERIAL_DEVICE
    baudrate: int = BAUD_RATE
    write_timeout: float = WRITE_TIMEOUT


@dataclass
class SessionOptions:
    """What a programming run should do once the device is identified."""

    config_change: ConfigChange = field(default_factory=ConfigChange)
    image: bytes | None = None
    remain_isp: bool = False

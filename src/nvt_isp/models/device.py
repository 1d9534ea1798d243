"""Device identity and per-run session state."""

from __future__ import annotations

from dataclasses import dataclass

from .config import ConfigBytes

SUPPORTED_DEVICES: dict[int, str] = {
    0x3650: "N76E003",
}


@dataclass
class SessionState:
    """What the programmer has learned about the device during one run.

    Packet numbering, the last command checksum and the last ack are kept
    by the command channel; this holds everything above that layer.
    """

    connected: bool = False
    firmware_version: int | None = None
    device_id: int | None = None
    config_current: ConfigBytes | None = None
    config_new: ConfigBytes | None = None
    config_mask: ConfigBytes | None = None
    aprom_size: int = 0  # bytes

    @property
    def chip_name(self) -> str | None:
        if self.device_id is None:
            return None
        return SUPPORTED_DEVICES.get(self.device_id)

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "firmware_version": (
                f"0x{self.firmware_version:X}" if self.firmware_version is not None else None
            ),
            "device_id": f"0x{self.device_id:04X}" if self.device_id is not None else None,
            "chip": self.chip_name,
            "aprom_size": self.aprom_size,
            "config": self.config_current.to_dict() if self.config_current else None,
        }

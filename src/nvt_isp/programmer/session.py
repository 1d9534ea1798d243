"""Device session: the fixed sequence of a programming run.

Usage::

    with SerialConnection(SerialSettings(port="/dev/ttyUSB0")) as conn:
        session = DeviceSession(conn)
        session.run(SessionOptions(image=load_image("app.bin")))

Each step raises on failure and nothing is rolled back: a half-written
APROM or configuration is left as it is.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..config import SessionOptions
from ..errors import IspError, StepFailed, UnsupportedDevice
from ..models.config import ConfigBytes, merge, needs_write
from ..models.device import SUPPORTED_DEVICES, SessionState
from ..protocol.commands import (
    Command,
    build_command,
    build_sync_packno,
    build_update_config,
)
from ..protocol.parser import ConfigReply, DeviceIdReply, FlashModeReply, FwVersionReply
from ..protocol.sequence import INITIAL_PACKET_NUMBER, SequenceTracker
from .channel import CommandChannel
from .handshake import ConnectHandshake
from .retry import COMMAND_POLICY, CONNECT_POLICY, ReplyPolicy
from .transfer import FlashBlockTransfer

logger = logging.getLogger(__name__)


class DeviceSession:
    """One programming session with an N76E003 in ISP mode."""

    def __init__(
        self,
        transport,
        start_packet_number: int = INITIAL_PACKET_NUMBER,
        command_policy: ReplyPolicy = COMMAND_POLICY,
        connect_policy: ReplyPolicy = CONNECT_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.channel = CommandChannel(transport, SequenceTracker(start_packet_number))
        self.state = SessionState()
        self._command_policy = command_policy
        self._connect_policy = connect_policy
        self._sleep = sleep

    # ─── SINGLE OPERATIONS ───────────────────────────────────────────

    def connect(self) -> None:
        """Probe with CONNECT until the bootloader answers."""
        ConnectHandshake(self.channel, self._connect_policy, self._sleep).run()
        self.state.connected = True

    def sync_packet_numbers(self) -> None:
        """Tell the device which packet number comes next."""
        rn = self.channel.tracker.next_pkt_num
        self.channel.transact(build_sync_packno(rn), policy=self._command_policy)

    def get_firmware_version(self) -> int:
        ack = self.channel.transact(
            build_command(Command.GET_FWVER), FwVersionReply, self._command_policy
        )
        self.state.firmware_version = ack.reply.version
        logger.info("FW version: 0x%x", ack.reply.version)
        return ack.reply.version

    def get_device_id(self) -> int:
        """Read the device id and refuse anything but a supported chip.

        Raises:
            UnsupportedDevice: For an unknown id.
        """
        ack = self.channel.transact(
            build_command(Command.GET_DEVICEID), DeviceIdReply, self._command_policy
        )
        device_id = ack.reply.device_id
        self.state.device_id = device_id
        if device_id not in SUPPORTED_DEVICES:
            raise UnsupportedDevice(device_id)
        logger.info("Device is %s", SUPPORTED_DEVICES[device_id])
        return device_id

    def get_flash_mode(self) -> int:
        ack = self.channel.transact(
            build_command(Command.GET_FLASHMODE), FlashModeReply, self._command_policy
        )
        return ack.reply.mode

    def read_config(self) -> ConfigBytes:
        """Read the config bytes and derive the APROM capacity from LDSIZE."""
        ack = self.channel.transact(
            build_command(Command.READ_CONFIG), ConfigReply, self._command_policy
        )
        config = ack.reply.config
        self.state.config_current = config
        self.state.aprom_size = config.aprom_size
        logger.info(
            "Config %s: LDROM=%dK, APROM=%dK",
            config.raw.hex(" "), config.ldrom_kb, config.aprom_kb,
        )
        return config

    def write_config(self, desired: ConfigBytes, mask: ConfigBytes) -> bool:
        """Program the bits selected by ``mask`` to their ``desired`` values.

        Nothing is sent if the merged configuration equals the current one.
        Otherwise the new bytes are written and read back, and the read-back
        value becomes the current configuration.

        Returns:
            True if the device was written.
        """
        current = self.state.config_current
        if current is None:
            current = self.read_config()

        updated = merge(current, desired, mask)
        self.state.config_new = desired
        self.state.config_mask = mask
        if not needs_write(current, updated):
            logger.info("No config changes")
            return False

        logger.info("Writing config %s", updated.raw.hex(" "))
        self.channel.transact(build_update_config(updated), policy=self._command_policy)
        self.read_config()
        return True

    def flash_aprom(self, image: bytes, progress: Callable[[int, int], None] | None = None) -> int:
        """Write ``image`` to APROM starting at address 0.

        Returns:
            Number of blocks sent.
        """
        if self.state.config_current is None:
            self.read_config()
        logger.info("Flashing APROM with %d bytes", len(image))
        transfer = FlashBlockTransfer(
            self.channel, self.state.aprom_size, self._command_policy, progress
        )
        return transfer.run(image)

    # The device reboots on these, so no ack ever arrives.

    def run_aprom(self) -> None:
        logger.info("Rebooting to APROM")
        self.channel.send(build_command(Command.RUN_APROM))
        self.state.connected = False

    def run_ldrom(self) -> None:
        logger.info("Rebooting to LDROM")
        self.channel.send(build_command(Command.RUN_LDROM))
        self.state.connected = False

    def reset(self) -> None:
        self.channel.send(build_command(Command.RESET))
        self.state.connected = False
        logger.info("Device reset")

    # ─── FULL RUN ────────────────────────────────────────────────────

    def _step(self, name: str, operation: Callable[[], object]) -> None:
        try:
            operation()
        except IspError as e:
            raise StepFailed(name, e) from e

    def run(self, options: SessionOptions) -> SessionState:
        """Perform a complete programming run.

        Steps run in a fixed order and the first failure aborts the rest.

        Raises:
            StepFailed: Naming the step that failed.
        """
        self._step("connect", self.connect)
        self._step("sync packet numbers", self.sync_packet_numbers)
        self._step("get FW version", self.get_firmware_version)
        self._step("get device ID", self.get_device_id)
        self._step("read config", self.read_config)

        change = options.config_change
        if not change.empty:
            self._step(
                "set config bits",
                lambda: self.write_config(change.desired, change.mask),
            )

        if options.image is not None:
            self._step("program APROM", lambda: self.flash_aprom(options.image))

        if not options.remain_isp:
            self._step("run APROM", self.run_aprom)

        return self.state

"""Serial connection to the N76E003 ISP bootloader.

The port is configured for 115200 baud, 8 data bits, no parity, one
stop bit and no flow control. The protocol layer only needs three
primitives: ``write``, a blocking ``read`` with timeout and a
non-blocking ``read_nonblocking``.
"""

from __future__ import annotations

import logging
import time

import serial

from ..config import DTR_PULSE, SerialSettings
from ..errors import TransportError

logger = logging.getLogger(__name__)


class SerialConnection:
    """Exclusive owner of the serial port for one programming session.

    Usage::

        with SerialConnection(SerialSettings(port="/dev/ttyUSB0")) as conn:
            conn.write(frame)
            reply = conn.read(64, timeout=5.0)
    """

    def __init__(self, settings: SerialSettings | None = None) -> None:
        self._settings = settings or SerialSettings()
        self._serial: serial.Serial | None = None

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def port(self) -> str:
        return self._settings.port

    def open(self) -> None:
        """Open and configure the port.

        Raises:
            TransportError: If the port cannot be opened or configured.
        """
        if self.connected:
            return
        try:
            self._serial = serial.Serial(
                port=self._settings.port,
                baudrate=self._settings.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                timeout=0,
                write_timeout=self._settings.write_timeout,
            )
        except (serial.SerialException, ValueError) as e:
            raise TransportError(
                f"Can't open serial port {self._settings.port}: {e}"
            ) from e
        logger.info("Opened %s at %d baud", self._settings.port, self._settings.baudrate)

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self._settings.port, e)
        finally:
            self._serial = None
            logger.info("Closed %s", self._settings.port)

    def __enter__(self) -> SerialConnection:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _port(self) -> serial.Serial:
        if self._serial is None:
            raise TransportError("Serial port is not open")
        return self._serial

    def pulse_reset(self, duration: float = DTR_PULSE) -> None:
        """Toggle DTR to reset the target.

        This only works if DTR is wired to the reset pin and the RPD
        config bit is set.
        """
        port = self._port()
        try:
            port.dtr = True
            time.sleep(duration)
            port.dtr = False
        except serial.SerialException as e:
            raise TransportError(f"Can't toggle DTR: {e}") from e

    def write(self, data: bytes) -> int:
        """Write all of ``data`` and wait until it has left the host.

        Raises:
            TransportError: On a write error or if the write timed out.
        """
        port = self._port()
        try:
            written = port.write(data)
            port.flush()
        except serial.SerialException as e:
            raise TransportError(f"Write to {self._settings.port} failed: {e}") from e
        if written != len(data):
            raise TransportError(
                f"Short write to {self._settings.port}: {written} of {len(data)} bytes"
            )
        logger.debug("TX > %s", bytes(data).hex(" "))
        return written

    def read(self, size: int, timeout: float) -> bytes:
        """Read up to ``size`` bytes, blocking for at most ``timeout`` seconds."""
        port = self._port()
        try:
            port.timeout = timeout
            data = port.read(size)
        except serial.SerialException as e:
            raise TransportError(f"Read from {self._settings.port} failed: {e}") from e
        if data:
            logger.debug("RX < %s", data.hex(" "))
        return data

    def read_nonblocking(self, size: int) -> bytes:
        """Return whatever is already buffered, up to ``size`` bytes."""
        return self.read(size, timeout=0)

    def read_available(self, size: int, timeout: float) -> bytes:
        """Wait up to ``timeout`` for the first byte, then return everything
        buffered (at most ``size`` bytes)."""
        port = self._port()
        try:
            port.timeout = timeout
            data = port.read(1)
            if data and port.in_waiting:
                data += port.read(min(port.in_waiting, size - 1))
        except serial.SerialException as e:
            raise TransportError(f"Read from {self._settings.port} failed: {e}") from e
        return data

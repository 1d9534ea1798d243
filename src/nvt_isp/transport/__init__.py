"""Serial transport to the ISP bootloader."""

from .serial_connection import SerialConnection

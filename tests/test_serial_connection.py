"""Tests for the pyserial transport, with the port mocked."""

from unittest.mock import MagicMock, patch

import pytest
import serial

from nvt_isp.config import SerialSettings
from nvt_isp.errors import TransportError
from nvt_isp.transport.serial_connection import SerialConnection


@pytest.fixture
def port():
    mock_port = MagicMock()
    mock_port.is_open = True
    with patch("serial.Serial", return_value=mock_port) as serial_cls:
        mock_port.serial_cls = serial_cls
        yield mock_port


def test_open_configures_8n1(port):
    conn = SerialConnection(SerialSettings(port="/dev/ttyUSB3"))
    conn.open()
    kwargs = port.serial_cls.call_args.kwargs
    assert kwargs["port"] == "/dev/ttyUSB3"
    assert kwargs["baudrate"] == 115200
    assert kwargs["bytesize"] == serial.EIGHTBITS
    assert kwargs["parity"] == serial.PARITY_NONE
    assert kwargs["stopbits"] == serial.STOPBITS_ONE
    assert kwargs["rtscts"] is False
    assert kwargs["xonxoff"] is False
    assert conn.connected


def test_open_failure_is_transport_error():
    with patch("serial.Serial", side_effect=serial.SerialException("busy")):
        with pytest.raises(TransportError, match="busy"):
            SerialConnection().open()


def test_context_manager_closes(port):
    with SerialConnection() as conn:
        assert conn.connected
    port.close.assert_called_once()
    assert not conn.connected


def test_write_flushes(port):
    port.write.return_value = 64
    with SerialConnection() as conn:
        assert conn.write(bytes(64)) == 64
    port.flush.assert_called_once()


def test_short_write_is_transport_error(port):
    port.write.return_value = 10
    with SerialConnection() as conn:
        with pytest.raises(TransportError):
            conn.write(bytes(64))


def test_write_timeout_is_transport_error(port):
    port.write.side_effect = serial.SerialTimeoutException("timeout")
    with SerialConnection() as conn:
        with pytest.raises(TransportError):
            conn.write(bytes(64))


def test_read_uses_timeout(port):
    port.read.return_value = b"\x01" * 64
    with SerialConnection() as conn:
        assert conn.read(64, timeout=5.0) == b"\x01" * 64
        assert port.timeout == 5.0
        conn.read_nonblocking(64)
        assert port.timeout == 0


def test_read_error_is_transport_error(port):
    port.read.side_effect = serial.SerialException("gone")
    with SerialConnection() as conn:
        with pytest.raises(TransportError):
            conn.read(64, timeout=1.0)


def test_read_available_drains_buffer(port):
    port.read.side_effect = [b"H", b"ello"]
    port.in_waiting = 4
    with SerialConnection() as conn:
        assert conn.read_available(500, timeout=1.0) == b"Hello"


def test_pulse_reset_toggles_dtr(port):
    with patch("time.sleep"):
        with SerialConnection() as conn:
            conn.pulse_reset()
    assert port.dtr is False


def test_closed_port_is_transport_error():
    with pytest.raises(TransportError):
        SerialConnection().write(bytes(64))

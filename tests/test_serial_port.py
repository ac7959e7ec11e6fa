"""Tests for the pyserial-backed modem connection."""

from unittest.mock import MagicMock, patch

import pytest
import serial

from kissproxy.errors import TransportError
from kissproxy.transport.serial_port import SerialPort


def _open_port(handle: MagicMock) -> SerialPort:
    port = SerialPort("/dev/ttyACM0", 9600)
    with patch("kissproxy.transport.serial_port.serial.Serial", return_value=handle) as ctor:
        port.open()
    ctor.assert_called_once_with("/dev/ttyACM0", 9600, timeout=None)
    return port


def test_open_failure_raises_transport_error():
    """A device that cannot be opened raises TransportError."""
    port = SerialPort("/dev/missing")
    with patch(
        "kissproxy.transport.serial_port.serial.Serial",
        side_effect=serial.SerialException("could not open port"),
    ):
        with pytest.raises(TransportError):
            port.open()
    assert not port.is_open


def test_read_byte_returns_value():
    """A single byte read is returned as an int."""
    handle = MagicMock()
    handle.read.return_value = b"\xc0"
    port = _open_port(handle)
    assert port.read_byte() == 0xC0
    handle.read.assert_called_once_with(1)


def test_read_byte_end_of_stream():
    """An empty read (cancelled or closed) is end-of-stream."""
    handle = MagicMock()
    handle.read.return_value = b""
    port = _open_port(handle)
    assert port.read_byte() is None


def test_read_error_raises_transport_error():
    """A read failure on an open port raises TransportError."""
    handle = MagicMock()
    handle.read.side_effect = serial.SerialException("device reports readiness to read but returned no data")
    port = _open_port(handle)
    with pytest.raises(TransportError):
        port.read_byte()


def test_read_after_close_is_end_of_stream():
    """Reading a closed port reports end-of-stream."""
    port = _open_port(MagicMock())
    port.close()
    assert port.read_byte() is None


def test_write_passes_bytes():
    """Writes go straight to the device."""
    handle = MagicMock()
    port = _open_port(handle)
    port.write(b"\xc0\x00\xc0")
    handle.write.assert_called_once_with(b"\xc0\x00\xc0")


def test_write_failure_raises_transport_error():
    """A write failure raises TransportError."""
    handle = MagicMock()
    handle.write.side_effect = serial.SerialTimeoutException("Write timeout")
    port = _open_port(handle)
    with pytest.raises(TransportError):
        port.write(b"\x00")


def test_write_when_closed_raises():
    """Writing to a port that is not open raises TransportError."""
    with pytest.raises(TransportError):
        SerialPort("/dev/ttyACM0").write(b"\x00")


def test_close_is_idempotent():
    """close() cancels pending reads once and tolerates repeats."""
    handle = MagicMock()
    port = _open_port(handle)
    port.close()
    port.close()
    handle.cancel_read.assert_called_once()
    handle.close.assert_called_once()
    assert not port.is_open

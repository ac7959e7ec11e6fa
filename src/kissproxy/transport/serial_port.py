"""Serial connection to the KISS modem.

Wraps ``pyserial`` with the four operations the relay needs: open,
close, single-byte reads, and writes. Reads block until a byte arrives;
closing the port from another thread wakes a pending read, which then
reports end-of-stream.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import serial

from ..errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BAUD = 57600


class SerialPort:
    """Manages the serial connection to the modem.

    Usage::

        port = SerialPort("/dev/ttyACM0", 57600)
        port.open()
        port.write(frame_bytes)
        b = port.read_byte()
        port.close()
    """

    def __init__(self, device: str, baud: int = DEFAULT_BAUD) -> None:
        self._device = device
        self._baud = baud
        self._serial: serial.Serial | None = None
        self._lock = threading.Lock()

    @property
    def device(self) -> str:
        return self._device

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the device at the configured baud rate.

        Raises:
            TransportError: If the device cannot be opened.
        """
        try:
            # timeout=None blocks reads until data arrives or the port closes
            handle = serial.Serial(self._device, self._baud, timeout=None)
        except (serial.SerialException, OSError, ValueError) as e:
            raise TransportError(f"Could not open {self._device}: {e}") from e

        with self._lock:
            self._serial = handle
        logger.debug("Opened %s at %d baud", self._device, self._baud)

    def close(self) -> None:
        """Close the port; safe to call repeatedly and from any thread."""
        with self._lock:
            handle, self._serial = self._serial, None
        if handle is None:
            return

        try:
            handle.cancel_read()
            handle.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error closing %s: %s", self._device, e)
        else:
            logger.debug("Closed %s", self._device)

    def read_byte(self) -> int | None:
        """Block until one byte arrives.

        Returns:
            The byte value, or ``None`` if the port was closed or the read
            was cancelled.

        Raises:
            TransportError: If the read fails.
        """
        handle = self._serial
        if handle is None:
            return None
        try:
            data = handle.read(1)
        except (serial.SerialException, OSError, TypeError, AttributeError) as e:
            if self._serial is None:
                # Closed underneath us by the other pump
                return None
            raise TransportError(f"Read from {self._device} failed: {e}") from e
        if not data:
            return None
        return data[0]

    def write(self, data: bytes) -> None:
        """Write bytes to the modem.

        Raises:
            TransportError: If the port is closed or the write fails.
        """
        handle = self._serial
        if handle is None:
            raise TransportError(f"{self._device} is not open")
        try:
            handle.write(data)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Write to {self._device} failed: {e}") from e


SerialPortFactory = Callable[[str, int], SerialPort]

"""KISS frame codec and streaming segmentation.

Frame layout::

    +------+-----------+--------------------------+------+
    | FEND | Type byte |     Escaped payload      | FEND |
    | 0xC0 | port:cmd  |     variable length      | 0xC0 |
    +------+-----------+--------------------------+------+

- Type byte: high nibble is the TNC port (0-15), low nibble the command
- Payload: FEND is sent as FESC TFEND, FESC is sent as FESC TFESC
- Senders may emit back-to-back FENDs between frames; these carry no data
"""

from __future__ import annotations

from typing import Callable

from ..errors import ConfigurationError, ProtocolError
from .commands import KissCommand, expected_payload_length, to_command

FEND = 0xC0
FESC = 0xDB
TFEND = 0xDC
TFESC = 0xDD

EXIT_KISS_MODE_BYTE = 0xFF
MAX_PORT = 15
MIN_FRAME_SIZE = 3  # FEND + type byte + FEND

FrameCallback = Callable[[bytes], None]


def escape(data: bytes) -> bytes:
    """Byte-stuff FEND and FESC so the result never contains either."""
    output = bytearray()
    for byte in data:
        if byte == FEND:
            output.extend((FESC, TFEND))
        elif byte == FESC:
            output.extend((FESC, TFESC))
        else:
            output.append(byte)
    return bytes(output)


def unescape(data: bytes) -> bytes:
    """Reverse :func:`escape`.

    A FESC that does not start a recognised two-byte sequence is passed
    through unchanged, as is everything else.
    """
    output = bytearray()
    i = 0
    while i < len(data):
        byte = data[i]
        if byte == FESC and i + 1 < len(data):
            following = data[i + 1]
            if following == TFEND:
                output.append(FEND)
                i += 2
                continue
            if following == TFESC:
                output.append(FESC)
                i += 2
                continue
        output.append(byte)
        i += 1
    return bytes(output)


def pack_type_byte(port: int, command: KissCommand | int) -> int:
    """Combine a port index and command code into the KISS type byte.

    Raises:
        ConfigurationError: If the port or command does not fit a nibble,
            ExitKissMode is requested on a port other than 15, or command
            0x0F is requested on port 15.
    """
    if not 0 <= port <= MAX_PORT:
        raise ConfigurationError(f"KISS port must be 0-{MAX_PORT}, got {port}")
    if command == KissCommand.EXIT_KISS_MODE:
        if port != MAX_PORT:
            raise ConfigurationError(
                f"ExitKissMode is only valid on port {MAX_PORT}, got {port}"
            )
        return EXIT_KISS_MODE_BYTE
    if not 0 <= command <= 0x0F:
        raise ConfigurationError(f"KISS command must be 0-15, got {command}")
    if port == MAX_PORT and command == 0x0F:
        raise ConfigurationError(
            f"Type byte 0x{EXIT_KISS_MODE_BYTE:02X} is reserved for ExitKissMode"
        )
    return (port << 4) | int(command)


def unpack_type_byte(type_byte: int) -> tuple[int, KissCommand | int]:
    """Split a KISS type byte into ``(port, command)``."""
    if type_byte == EXIT_KISS_MODE_BYTE:
        return MAX_PORT, KissCommand.EXIT_KISS_MODE
    return type_byte >> 4, to_command(type_byte & 0x0F)


def encode(payload: bytes, port: int = 0, command: KissCommand | int = KissCommand.DATA_FRAME) -> bytes:
    """Wrap a payload into a KISS frame.

    Args:
        payload: Unframed bytes, usually an AX.25 frame.
        port: TNC port index 0-15.
        command: KISS command code.

    Returns:
        ``FEND`` + type byte + escaped payload + ``FEND``.

    Raises:
        ConfigurationError: If ``port`` is out of range, or the payload
            length does not suit a fixed-size command.
    """
    expected = expected_payload_length(command)
    if expected is not None and len(payload) != expected:
        raise ConfigurationError(
            f"{command!r} takes {expected} payload byte(s), got {len(payload)}"
        )

    frame = bytearray((FEND, pack_type_byte(port, command)))
    frame.extend(escape(payload))
    frame.append(FEND)
    return bytes(frame)


def decode(frame: bytes) -> tuple[bytes, int, KissCommand | int]:
    """Unwrap a KISS frame into ``(payload, port, command)``.

    Raises:
        ProtocolError: If the frame is too short, is not bounded by FEND,
            or carries the wrong payload length for a fixed-size command.
    """
    if len(frame) < MIN_FRAME_SIZE:
        raise ProtocolError(
            f"KISS frame must be at least {MIN_FRAME_SIZE} bytes, got {len(frame)}"
        )
    if frame[0] != FEND:
        raise ProtocolError(f"KISS frame must start with FEND, got 0x{frame[0]:02X}")
    if frame[-1] != FEND:
        raise ProtocolError(f"KISS frame must end with FEND, got 0x{frame[-1]:02X}")

    port, command = unpack_type_byte(frame[1])
    payload = unescape(frame[2:-1])

    expected = expected_payload_length(command)
    if expected is not None and len(payload) != expected:
        raise ProtocolError(
            f"{command!r} takes {expected} payload byte(s), got {len(payload)}"
        )

    return payload, port, command


def discard_repeated_fend(buffer: bytearray) -> None:
    """Drop a trailing FEND when the buffer ends with two of them."""
    if len(buffer) > 1 and buffer[-1] == FEND and buffer[-2] == FEND:
        del buffer[-1]


def is_kiss_frame(buffer: bytes | bytearray) -> bool:
    """True when the buffer holds a complete frame bounded by FENDs."""
    return len(buffer) > 2 and buffer[0] == FEND and buffer[-1] == FEND


def process_byte(buffer: bytearray, byte: int, on_frame: FrameCallback) -> None:
    """Advance the segmentation state machine by one received byte.

    ``on_frame`` receives a copy of each completed frame, after which the
    buffer is cleared. A frame whose opening FEND was lost (for example
    when reading starts mid-stream) is handed over with a synthetic FEND
    in front so that every dispatched frame is well formed.
    """
    if byte == FEND and len(buffer) == 1 and buffer[0] == FEND:
        # A repeated leading FEND opens nothing
        return

    buffer.append(byte)

    if byte == FEND and len(buffer) > 2:
        frame = bytes(buffer)
        if frame[0] != FEND:
            frame = bytes((FEND,)) + frame
        buffer.clear()
        on_frame(frame)

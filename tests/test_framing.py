"""Tests for KISS frame encoding and decoding."""

import pytest

from kissproxy.errors import ConfigurationError, ProtocolError
from kissproxy.protocol.commands import KissCommand
from kissproxy.protocol.framing import (
    FEND,
    FESC,
    TFEND,
    TFESC,
    decode,
    encode,
    escape,
    pack_type_byte,
    unescape,
    unpack_type_byte,
)


def test_encode_minimal_data_frame():
    """An empty data frame on port 0 is FEND, 0x00, FEND."""
    assert encode(b"") == bytes([FEND, 0x00, FEND])


def test_encode_packs_port_and_command():
    """Port goes in the high nibble, command in the low nibble."""
    frame = encode(b"\x10", port=3, command=KissCommand.TX_DELAY)
    assert frame == bytes([FEND, 0x31, 0x10, FEND])


def test_encode_escapes_special_bytes():
    """Literal FEND and FESC in the payload are byte-stuffed."""
    frame = encode(bytes([0x01, FEND, 0x02, FESC, 0x03]))
    assert frame == bytes([FEND, 0x00, 0x01, FESC, TFEND, 0x02, FESC, TFESC, 0x03, FEND])


def test_encoded_body_has_no_delimiters():
    """Only the two boundary bytes of an encoded frame may be FEND or FESC."""
    payload = bytes([FEND, FESC, FEND, FEND, FESC, 0x41]) * 4
    frame = encode(payload, port=7)
    body = frame[1:-1]
    assert FEND not in body
    assert all(b != FESC or body[i + 1] in (TFEND, TFESC) for i, b in enumerate(body))
    assert frame[0] == FEND and frame[-1] == FEND


def test_encode_rejects_port_above_15():
    """Ports beyond one nibble cannot be encoded."""
    with pytest.raises(ConfigurationError):
        encode(b"abc", port=16)
    with pytest.raises(ValueError):
        encode(b"abc", port=-1)


def test_encode_rejects_wide_command():
    """Commands other than ExitKissMode must fit in a nibble."""
    with pytest.raises(ConfigurationError):
        encode(b"", port=0, command=0x10)


def test_exit_kiss_mode_byte():
    """ExitKissMode is the single type byte 0xFF."""
    assert encode(b"", port=15, command=KissCommand.EXIT_KISS_MODE) == bytes([FEND, 0xFF, FEND])
    with pytest.raises(ConfigurationError):
        encode(b"", port=0, command=KissCommand.EXIT_KISS_MODE)


def test_encode_rejects_reserved_type_byte():
    """Command 0x0F on port 15 would collide with ExitKissMode's 0xFF."""
    with pytest.raises(ConfigurationError):
        encode(b"", port=15, command=0x0F)
    with pytest.raises(ConfigurationError):
        encode(b"\x01", port=15, command=0x0F)
    with pytest.raises(ConfigurationError):
        pack_type_byte(15, 0x0F)
    assert pack_type_byte(14, 0x0F) == 0xEF


def test_encode_rejects_wrong_fixed_payload_length():
    """Fixed-size commands cannot be encoded with the wrong payload length."""
    with pytest.raises(ConfigurationError):
        encode(b"\x01\x02", port=0, command=KissCommand.TX_DELAY)
    with pytest.raises(ConfigurationError):
        encode(b"", port=3, command=KissCommand.FULL_DUPLEX)
    with pytest.raises(ConfigurationError):
        encode(b"\x00", port=15, command=KissCommand.EXIT_KISS_MODE)


def test_decode_data_frame():
    """Decode strips framing and returns payload, port, and command."""
    payload, port, command = decode(bytes([FEND, 0x20, 0x41, 0x42, FEND]))
    assert payload == b"AB"
    assert port == 2
    assert command is KissCommand.DATA_FRAME


def test_decode_unescapes():
    """FESC TFEND becomes FEND and FESC TFESC becomes FESC."""
    payload, _, _ = decode(bytes([FEND, 0x00, FESC, TFEND, FESC, TFESC, FEND]))
    assert payload == bytes([FEND, FESC])


def test_decode_unknown_command_is_plain_int():
    """Command codes without a name decode to their integer value."""
    payload, port, command = decode(bytes([FEND, 0x17, 0x01, 0x02, FEND]))
    assert payload == b"\x01\x02"
    assert port == 1
    assert command == 7
    assert not isinstance(command, KissCommand)


def test_decode_exit_kiss_mode():
    """0xFF decodes to port 15 with ExitKissMode."""
    assert decode(bytes([FEND, 0xFF, FEND])) == (b"", 15, KissCommand.EXIT_KISS_MODE)


def test_decode_too_short():
    """Frames shorter than three bytes are rejected."""
    with pytest.raises(ProtocolError):
        decode(bytes([FEND, FEND]))


def test_decode_missing_leading_fend():
    """A frame must start with FEND."""
    with pytest.raises(ProtocolError):
        decode(bytes([0x00, 0x41, FEND]))


def test_decode_missing_trailing_fend():
    """A frame must end with FEND."""
    with pytest.raises(ProtocolError):
        decode(bytes([FEND, 0x00, 0x41]))


def test_decode_tx_delay_with_two_bytes_fails():
    """TxDelay carries exactly one parameter byte."""
    with pytest.raises(ProtocolError):
        decode(bytes([FEND, 0x01, 0x10, 0x20, FEND]))


def test_decode_fixed_length_commands_need_one_byte():
    """Every one-parameter command rejects an empty payload."""
    for code in (0x01, 0x02, 0x03, 0x04, 0x05):
        with pytest.raises(ProtocolError):
            decode(bytes([FEND, code, FEND]))
        payload, _, command = decode(bytes([FEND, code, 0x32, FEND]))
        assert payload == b"\x32"
        assert command == code


def test_decode_exit_kiss_mode_with_payload_fails():
    """ExitKissMode carries no payload."""
    with pytest.raises(ProtocolError):
        decode(bytes([FEND, 0xFF, 0x01, FEND]))


def test_stray_fesc_passes_through():
    """A FESC not followed by TFEND or TFESC is kept as-is."""
    assert unescape(bytes([0x01, FESC, 0x02])) == bytes([0x01, FESC, 0x02])
    assert unescape(bytes([0x01, FESC])) == bytes([0x01, FESC])


def test_escape_unescape_inverse():
    """Unescaping an escaped buffer restores it."""
    data = bytes(range(256))
    assert unescape(escape(data)) == data


@pytest.mark.parametrize(
    "payload, port, command",
    [
        (b"", 0, KissCommand.DATA_FRAME),
        (b"\x82\xa0\xa4\xa6@@`", 0, KissCommand.DATA_FRAME),
        (bytes([FEND, FESC, TFEND, TFESC]), 5, KissCommand.DATA_FRAME),
        (b"\x1e", 1, KissCommand.TX_DELAY),
        (b"\x3f", 15, KissCommand.PERSISTENCE),
        (b"\x00\x01" + bytes([FEND]) * 3, 9, KissCommand.ACK_MODE),
        (b"\x06\x07", 2, KissCommand.SET_HARDWARE),
        (b"", 15, KissCommand.EXIT_KISS_MODE),
        (bytes(range(256)), 4, 0x0E),
    ],
)
def test_roundtrip(payload, port, command):
    """decode(encode(p, i, c)) returns (p, i, c)."""
    assert decode(encode(payload, port, command)) == (payload, port, command)


def test_reencode_reproduces_frame():
    """Re-encoding a decoded frame reproduces it byte for byte."""
    frame = bytes([FEND, 0x30, 0x01, FESC, TFEND, 0x02, FESC, TFESC, FEND])
    payload, port, command = decode(frame)
    assert encode(payload, port, command) == frame


def test_type_byte_helpers():
    """pack_type_byte and unpack_type_byte are inverses."""
    assert pack_type_byte(10, KissCommand.FULL_DUPLEX) == 0xA5
    assert unpack_type_byte(0xA5) == (10, KissCommand.FULL_DUPLEX)
    assert unpack_type_byte(0xFF) == (15, KissCommand.EXIT_KISS_MODE)

"""KISS command codes and per-command payload rules.

The type byte following the opening FEND packs the TNC port index into
its high nibble and the command code into its low nibble. The single
byte ``0xFF`` is reserved for ExitKissMode.
"""

from __future__ import annotations

from enum import IntEnum


class KissCommand(IntEnum):
    """KISS command codes."""

    DATA_FRAME = 0x00
    TX_DELAY = 0x01
    PERSISTENCE = 0x02
    SLOT_TIME = 0x03
    TX_TAIL = 0x04
    FULL_DUPLEX = 0x05
    SET_HARDWARE = 0x06
    ACK_MODE = 0x0C
    EXIT_KISS_MODE = 0xFF

    @property
    def topic_name(self) -> str:
        """CamelCase name used in telemetry topics, e.g. ``DataFrame``."""
        return _TOPIC_NAMES[self]


_TOPIC_NAMES: dict[KissCommand, str] = {
    KissCommand.DATA_FRAME: "DataFrame",
    KissCommand.TX_DELAY: "TxDelay",
    KissCommand.PERSISTENCE: "Persistence",
    KissCommand.SLOT_TIME: "SlotTime",
    KissCommand.TX_TAIL: "TxTail",
    KissCommand.FULL_DUPLEX: "FullDuplex",
    KissCommand.SET_HARDWARE: "SetHardware",
    KissCommand.ACK_MODE: "AckMode",
    KissCommand.EXIT_KISS_MODE: "ExitKissMode",
}

# Commands whose payload is exactly one parameter byte
SINGLE_BYTE_COMMANDS = frozenset({
    KissCommand.TX_DELAY,
    KissCommand.PERSISTENCE,
    KissCommand.SLOT_TIME,
    KissCommand.TX_TAIL,
    KissCommand.FULL_DUPLEX,
})

# Commands whose payload is an AX.25 frame worth describing
DESCRIBABLE_COMMANDS = frozenset({
    KissCommand.DATA_FRAME,
    KissCommand.ACK_MODE,
})


def to_command(code: int) -> KissCommand | int:
    """Return the ``KissCommand`` for ``code``, or ``code`` itself if unknown."""
    try:
        return KissCommand(code)
    except ValueError:
        return code


def command_name(command: KissCommand | int) -> str:
    """Name a command for topics and logs; unknown codes use their number."""
    if isinstance(command, KissCommand):
        return command.topic_name
    return str(command)


def expected_payload_length(command: KissCommand | int) -> int | None:
    """Fixed payload length for ``command``, or ``None`` if unrestricted."""
    if command == KissCommand.EXIT_KISS_MODE:
        return 0
    if command in SINGLE_BYTE_COMMANDS:
        return 1
    return None

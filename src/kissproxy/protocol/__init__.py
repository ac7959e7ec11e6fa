"""Protocol layer: KISS framing, command codes, and frame assembly."""

from .framing import FEND, FESC, TFEND, TFESC, decode, encode
from .commands import KissCommand, command_name
from .assembler import FrameAssembler

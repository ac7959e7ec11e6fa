"""Per-direction frame assembler wrapping the streaming KISS state machine."""

from __future__ import annotations

import logging

from .framing import FEND, FrameCallback, discard_repeated_fend, process_byte

logger = logging.getLogger(__name__)


class FrameAssembler:
    """Accumulates one direction's bytes and yields completed KISS frames.

    The accumulation buffer is private; a single producer feeds it in
    arrival order. Usage::

        assembler = FrameAssembler(on_frame=publish)
        for b in stream:
            assembler.feed(b)
    """

    def __init__(
        self,
        on_frame: FrameCallback | None = None,
        name: str = "",
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._buffer = bytearray()
        self._on_frame = on_frame
        self._name = name
        self._log = log or logger
        self._synced = False
        self.frames_assembled = 0
        self.frames_normalized = 0

    @property
    def pending(self) -> bytes:
        """Bytes received since the last completed frame."""
        return bytes(self._buffer)

    def reset(self) -> None:
        """Discard any partially received frame."""
        self._buffer.clear()
        self._synced = False

    def feed(self, byte: int) -> bytes | None:
        """Feed one byte; return the frame it completes, if any."""
        completed: list[bytes] = []
        discard_repeated_fend(self._buffer)
        first = self._buffer[0] if self._buffer else byte
        process_byte(self._buffer, byte, completed.append)
        if not completed:
            return None

        frame = completed[0]
        self.frames_assembled += 1
        if first != FEND:
            if self._synced:
                # Opening FEND shared with the previous frame
                self._log.debug(
                    "%s frame of %d bytes shares its opening FEND",
                    self._name or "KISS",
                    len(frame),
                )
            else:
                self.frames_normalized += 1
                self._log.warning(
                    "%s frame of %d bytes did not start with FEND, normalized",
                    self._name or "KISS",
                    len(frame),
                )
        self._synced = True
        if self._on_frame is not None:
            self._on_frame(frame)
        return frame

    def feed_bytes(self, data: bytes) -> list[bytes]:
        """Feed a chunk of bytes in order and return every completed frame."""
        frames = []
        for byte in data:
            frame = self.feed(byte)
            if frame is not None:
                frames.append(frame)
        return frames

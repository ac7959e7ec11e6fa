"""Human-readable frame descriptions via the external ``ax2txt`` tool.

The tool reads an AX.25 frame on stdin and prints a one-line summary.
Frames it cannot describe are saved to a scratch directory so they can
be inspected later.
"""

from __future__ import annotations

import logging
import subprocess
import time
import uuid
from pathlib import Path
from typing import Protocol

from ..errors import ExternalToolError

logger = logging.getLogger(__name__)

AX2TXT_PATH = "/opt/ax2txt/ax2txt"
SCRATCH_DIR = "/tmp/kissproxy"
DESCRIBE_TIMEOUT = 2.0  # seconds


class FrameDescriber(Protocol):
    """Anything that can turn an unframed payload into descriptive text."""

    def describe(self, payload: bytes, timeout: float = DESCRIBE_TIMEOUT) -> str | None:
        ...


def clean_output(text: str) -> str | None:
    """Collapse tool output onto one line; ``None`` if it is blank."""
    text = text.strip().replace("\r", "").replace("\n", " ")
    return text or None


def save_frame(payload: bytes, scratch_dir: str | Path = SCRATCH_DIR) -> Path:
    """Write ``payload`` to a uniquely named file under ``scratch_dir``."""
    directory = Path(scratch_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / str(uuid.uuid4())
    path.write_bytes(payload)
    return path


class Ax2TxtDescriber:
    """Describes frames by piping them through ``ax2txt``."""

    def __init__(
        self,
        program: str | Path = AX2TXT_PATH,
        scratch_dir: str | Path = SCRATCH_DIR,
    ) -> None:
        self._program = Path(program)
        self._scratch_dir = Path(scratch_dir)

    @property
    def available(self) -> bool:
        return self._program.is_file()

    def describe(self, payload: bytes, timeout: float = DESCRIBE_TIMEOUT) -> str | None:
        """Return a description of ``payload``, or ``None`` if there is none.

        Failures are logged and never raised.
        """
        if not payload or not self.available:
            return None

        try:
            return self._run(payload, timeout)
        except ExternalToolError as e:
            self._save_failed(payload, str(e))
            return None

    def _run(self, payload: bytes, timeout: float) -> str | None:
        started = time.monotonic()
        try:
            # subprocess.run kills the child when the timeout expires
            result = subprocess.run(
                [str(self._program)],
                input=payload,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            elapsed_ms = (time.monotonic() - started) * 1000
            raise ExternalToolError(
                f"{self._program.name} took too long: {elapsed_ms:.0f}ms, and was killed"
            ) from e
        except OSError as e:
            logger.error("While running %s: %s", self._program.name, e)
            return None

        if result.returncode != 0:
            raise ExternalToolError(
                f"{self._program.name} returned exit code {result.returncode}"
            )

        return clean_output(result.stdout.decode("utf-8", errors="replace"))

    def _save_failed(self, payload: bytes, reason: str) -> None:
        try:
            path = save_frame(payload, self._scratch_dir)
        except OSError as e:
            logger.error("%s, got exception while saving data: %s", reason, e)
        else:
            logger.error("%s, data saved %s", reason, path)

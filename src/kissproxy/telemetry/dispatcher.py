"""Publishes observed KISS frames to the telemetry sink.

Frames are handed over through a bounded queue and processed on a
dedicated worker thread, so a slow broker or describer never holds up
the relay. For each frame the worker publishes, under
``{root}/{machine}/{instance}/{to|from}Modem``:

- ``/framed``: the frame exactly as it crossed the wire
- ``/unframed/port{N}/{Command}KissCmd``: the decoded payload
- ``/decoded/port{N}/``: ``ax2txt`` text, for data and ack-mode frames
"""

from __future__ import annotations

import base64
import logging
import queue
import socket
import threading

from ..errors import ProtocolError
from ..protocol.commands import DESCRIBABLE_COMMANDS, command_name
from ..protocol.framing import decode
from .describer import DESCRIBE_TIMEOUT, FrameDescriber
from .mqtt import QOS_EXACTLY_ONCE, TelemetrySink

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_ROOT = "kissproxy"
DEFAULT_MAX_PENDING = 1000

_STOP = object()


def machine_id(hostname: str | None = None) -> str:
    """Last ``/``-separated segment of the host name."""
    if hostname is None:
        hostname = socket.gethostname()
    return hostname.split("/")[-1]


def direction_topic(root: str, machine: str, instance: str, outbound: bool) -> str:
    """Topic prefix for one direction of one instance."""
    return f"{root}/{machine}/{instance}/{'to' if outbound else 'from'}Modem"


class TelemetryDispatcher:
    """Decodes frames and publishes them without blocking the caller."""

    def __init__(
        self,
        instance: str,
        sink: TelemetrySink | None,
        describer: FrameDescriber | None = None,
        base64_payloads: bool = False,
        topic_root: str | None = None,
        machine: str | None = None,
        max_pending: int = DEFAULT_MAX_PENDING,
        describe_timeout: float = DESCRIBE_TIMEOUT,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._instance = instance
        self._sink = sink
        self._describer = describer
        self._base64 = base64_payloads
        self._root = topic_root or DEFAULT_TOPIC_ROOT
        self._machine = machine if machine is not None else machine_id()
        self._describe_timeout = describe_timeout
        self._log = log or logger
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._worker: threading.Thread | None = None
        self.dropped = 0

    @property
    def enabled(self) -> bool:
        return self._sink is not None

    def topic_for(self, outbound: bool) -> str:
        return direction_topic(self._root, self._machine, self._instance, outbound)

    def start(self) -> None:
        """Start the worker thread; a no-op without a sink."""
        if not self.enabled or self._worker is not None:
            return
        self._worker = threading.Thread(
            target=self._run,
            name=f"telemetry-{self._instance or 'default'}",
            daemon=True,
        )
        self._worker.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Process queued frames, then stop the worker."""
        worker, self._worker = self._worker, None
        if worker is None:
            return
        self._queue.put(_STOP)
        worker.join(timeout)

    def submit(self, outbound: bool, frame: bytes) -> None:
        """Hand a completed frame to the worker without blocking."""
        if not self.enabled:
            return
        try:
            self._queue.put_nowait((outbound, frame))
        except queue.Full:
            self.dropped += 1
            self._log.warning(
                "Telemetry queue full, dropped %s frame of %d bytes",
                "outbound" if outbound else "inbound",
                len(frame),
            )

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            outbound, frame = item
            try:
                self.process_frame(outbound, frame)
            except Exception:
                self._log.exception("Telemetry for %d byte frame failed", len(frame))

    def process_frame(self, outbound: bool, frame: bytes) -> None:
        """Publish everything derived from one frame.

        Decode failures end processing of this frame only.
        """
        if self._sink is None:
            return

        topic = self.topic_for(outbound)
        self._publish_bytes(f"{topic}/framed", frame)

        try:
            payload, port, command = decode(frame)
        except ProtocolError as e:
            self._log.error("Could not unframe KISS frame: %s", e)
            return

        self._publish_bytes(
            f"{topic}/unframed/port{port}/{command_name(command)}KissCmd", payload
        )

        if command not in DESCRIBABLE_COMMANDS or self._describer is None:
            return

        description = self._describer.describe(payload, timeout=self._describe_timeout)
        if description is None:
            return

        self._sink.publish(f"{topic}/decoded/port{port}/", description, qos=QOS_EXACTLY_ONCE)
        self._log.debug(
            "%s %d bytes: %s",
            "outbound" if outbound else "inbound",
            len(frame),
            description,
        )

    def _publish_bytes(self, topic: str, data: bytes) -> None:
        payload: bytes | str = data
        if self._base64:
            payload = base64.b64encode(data).decode("ascii")
        self._sink.publish(topic, payload, qos=QOS_EXACTLY_ONCE)

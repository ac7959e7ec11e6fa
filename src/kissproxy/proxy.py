"""Relay engine: bridges one node TCP connection to one serial KISS modem.

Each iteration of :meth:`Proxy.run` listens for a node, opens the modem
and runs two pump threads, one per direction::

    node --TCP--> [outbound assembler] --> modem
    node <--TCP-- [inbound assembler]  <-- modem

Bytes are forwarded unchanged, in arrival order, one at a time. The
assemblers only observe the stream and hand completed frames to the
telemetry dispatcher. When either side fails, the pump that notices
closes the opposite transport so that the other pump ends too, and the
proxy goes back to listening.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading

from .config import ProxyConfig
from .errors import TransportError
from .protocol.assembler import FrameAssembler
from .telemetry.describer import FrameDescriber
from .telemetry.dispatcher import TelemetryDispatcher
from .telemetry.mqtt import TelemetrySink
from .transport.serial_port import SerialPort, SerialPortFactory
from .transport.tcp import NodeConnection, open_listener
from .utils.log import InstanceLogger

logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5  # seconds between stop checks while listening


class ProxyState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CONNECTED = "connected"
    RELAYING = "relaying"
    TORN_DOWN = "torn down"
    STOPPED = "stopped"


class Proxy:
    """One proxy instance: a TCP port paired with a serial modem.

    Usage::

        proxy = Proxy(ProxyConfig(com_port="/dev/ttyACM0"), sink=mqtt_sink)
        proxy.run()  # blocks; serves node connections one after another
    """

    def __init__(
        self,
        config: ProxyConfig,
        serial_factory: SerialPortFactory = SerialPort,
        sink: TelemetrySink | None = None,
        describer: FrameDescriber | None = None,
        machine: str | None = None,
    ) -> None:
        self._config = config
        self._serial_factory = serial_factory
        self._log = InstanceLogger(logger, config.id)
        self._dispatcher = TelemetryDispatcher(
            config.name,
            sink,
            describer,
            base64_payloads=config.base64,
            topic_root=config.mqtt_topic,
            machine=machine,
            log=self._log,
        )
        self._inbound = FrameAssembler(
            on_frame=lambda frame: self._dispatcher.submit(False, frame),
            name="Inbound",
            log=self._log,
        )
        self._outbound = FrameAssembler(
            on_frame=lambda frame: self._dispatcher.submit(True, frame),
            name="Outbound",
            log=self._log,
        )

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._node: NodeConnection | None = None
        self._modem: SerialPort | None = None

        self.listening = threading.Event()
        self.state = ProxyState.IDLE
        self.connections_served = 0

    @property
    def config(self) -> ProxyConfig:
        return self._config

    @property
    def dispatcher(self) -> TelemetryDispatcher:
        return self._dispatcher

    def stop(self) -> None:
        """Ask :meth:`run` to return, closing any live connection."""
        self._stop.set()
        with self._lock:
            node, modem = self._node, self._modem
        if node is not None:
            node.close()
        if modem is not None:
            modem.close()

    def run(self) -> None:
        """Serve node connections until stopped or an instance-fatal error.

        A listener that cannot be bound ends the instance. A modem that
        cannot be opened, or a connection that drops, only ends the
        current iteration.
        """
        self._log.debug("Starting")
        self._dispatcher.start()
        try:
            while not self._stop.is_set():
                try:
                    listener = open_listener(self._config.tcp_port, self._config.any_host)
                except TransportError as e:
                    self._log.error("Failed to start TCP listener: %s", e)
                    return

                with listener:
                    accepted = self._accept(listener)
                    if accepted is None:
                        continue
                    self._serve(*accepted)
        except Exception:
            self._log.exception("Top level exception handled")
        finally:
            self.listening.clear()
            self.state = ProxyState.STOPPED
            self._dispatcher.stop()
            self._log.debug("Stopped")

    def _accept(self, listener: socket.socket) -> tuple[socket.socket, object] | None:
        """Wait for a node, polling so that :meth:`stop` is noticed."""
        listener.settimeout(ACCEPT_POLL_INTERVAL)
        self.state = ProxyState.LISTENING
        self.listening.set()
        self._log.info("Awaiting node connection on port %d", self._config.tcp_port)
        try:
            while not self._stop.is_set():
                try:
                    sock, peer = listener.accept()
                except socket.timeout:
                    continue
                sock.setblocking(True)
                self.state = ProxyState.CONNECTED
                return sock, peer
        finally:
            self.listening.clear()
        return None

    def _serve(self, sock: socket.socket, peer) -> None:
        """Open the modem for an accepted node and relay until either side drops."""
        node = NodeConnection(sock, peer)
        self.connections_served += 1
        self._log.info(
            "Accepted TCP node connection from %s on port %d",
            peer,
            self._config.tcp_port,
        )

        modem = self._serial_factory(self._config.com_port, self._config.baud)
        try:
            modem.open()
        except TransportError as e:
            self._log.error("Could not open %s: %s", self._config.com_port, e)
            node.close()
            self.state = ProxyState.TORN_DOWN
            return

        self._log.info("Opened serial port %s", self._config.com_port)
        with self._lock:
            self._node, self._modem = node, modem
        if self._stop.is_set():
            # stop() raced with the accept
            node.close()
            modem.close()

        try:
            self.state = ProxyState.RELAYING
            self._relay(node, modem)
        finally:
            with self._lock:
                self._node, self._modem = None, None
            node.close()
            modem.close()
            # A partial frame from this connection must not leak into the next
            self._inbound.reset()
            self._outbound.reset()
            self.state = ProxyState.TORN_DOWN
            self._log.info("Connection torn down")

    def _relay(self, node: NodeConnection, modem: SerialPort) -> None:
        name = self._config.name
        pumps = [
            threading.Thread(
                target=self._node_to_modem,
                args=(node, modem),
                name=f"{name}-node-to-modem",
                daemon=True,
            ),
            threading.Thread(
                target=self._modem_to_node,
                args=(node, modem),
                name=f"{name}-modem-to-node",
                daemon=True,
            ),
        ]
        for pump in pumps:
            pump.start()
        for pump in pumps:
            pump.join()

    def _node_to_modem(self, node: NodeConnection, modem: SerialPort) -> None:
        while True:
            try:
                b = node.read_byte()
            except TransportError as e:
                self._log.error("Node disconnected (%s), closing serial port", e)
                modem.close()
                return

            if b is None:
                self._log.info("Node disconnected, closing serial port")
                modem.close()
                return

            self._outbound.feed(b)

            try:
                modem.write(bytes((b,)))
            except TransportError as e:
                self._log.error('Writing byte to modem failed with "%s", closing serial port', e)
                modem.close()
                return

    def _modem_to_node(self, node: NodeConnection, modem: SerialPort) -> None:
        while True:
            try:
                b = modem.read_byte()
            except TransportError as e:
                self._log.error('Reading byte from modem failed with "%s", disconnecting node', e)
                node.close()
                return

            if b is None:
                self._log.info("Modem read ended, disconnecting node")
                node.close()
                return

            self._inbound.feed(b)

            try:
                node.write(bytes((b,)))
            except TransportError as e:
                self._log.error('Writing byte to node failed with "%s", disconnecting node', e)
                node.close()
                return

"""TCP side of the proxy: the listener and the accepted node connection."""

from __future__ import annotations

import logging
import socket
import threading

from ..errors import TransportError

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"
ANY_HOST = "0.0.0.0"


def open_listener(port: int, any_host: bool = False) -> socket.socket:
    """Bind a listening socket for node connections.

    Args:
        port: TCP port to listen on.
        any_host: Accept connections from other hosts instead of loopback only.

    Raises:
        TransportError: If the port cannot be bound.
    """
    host = ANY_HOST if any_host else LOOPBACK
    try:
        return socket.create_server((host, port), backlog=1)
    except OSError as e:
        raise TransportError(f"Could not listen on {host}:{port}: {e}") from e


class NodeConnection:
    """An accepted TCP connection from the node.

    ``close`` shuts the socket down before releasing it so that a read
    blocked in another thread returns immediately.
    """

    def __init__(self, sock: socket.socket, peer=None) -> None:
        self._sock = sock
        self._peer = peer
        self._closed = False
        self._lock = threading.Lock()

    @property
    def peer(self):
        return self._peer

    @property
    def closed(self) -> bool:
        return self._closed

    def read_byte(self) -> int | None:
        """Block until one byte arrives; ``None`` means the node went away.

        Raises:
            TransportError: If the read fails on an open connection.
        """
        try:
            data = self._sock.recv(1)
        except OSError as e:
            if self._closed:
                return None
            raise TransportError(f"Read from node failed: {e}") from e
        if not data:
            return None
        return data[0]

    def write(self, data: bytes) -> None:
        """Send bytes to the node.

        Raises:
            TransportError: If the connection is closed or the send fails.
        """
        if self._closed:
            raise TransportError("Node connection is closed")
        try:
            self._sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Write to node failed: {e}") from e

    def close(self) -> None:
        """Close the connection; safe to call repeatedly and from any thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected by the peer
            pass
        self._sock.close()
        logger.debug("Closed node connection %s", self._peer)

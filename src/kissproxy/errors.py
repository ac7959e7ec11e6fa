"""Exception taxonomy shared by the codec, transports, and telemetry."""

from __future__ import annotations


class KissProxyError(Exception):
    """Base class for all kissproxy errors."""


class TransportError(KissProxyError, ConnectionError):
    """A read, write, or open failed on the serial port or TCP socket."""


class ProtocolError(KissProxyError, ValueError):
    """A KISS frame is malformed and cannot be decoded."""


class ConfigurationError(KissProxyError, ValueError):
    """Invalid arguments or an unreadable configuration."""


class ExternalToolError(KissProxyError):
    """The frame description tool failed or timed out."""


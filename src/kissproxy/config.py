"""Proxy instance configuration.

A configuration file is a JSON array with one object per proxy
instance::

    [
      {"Id": "radio1", "ComPort": "/dev/ttyACM0", "TcpPort": 8910},
      {"Id": "radio2", "ComPort": "/dev/ttyACM1", "TcpPort": 8911,
       "MqttServer": "broker.local", "Base64": true}
    ]

Keys are matched ignoring case and underscores, so ``ComPort``,
``comport`` and ``com_port`` are equivalent.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

CONFIG_SEARCH_PATHS = ("/etc/kissproxy.conf", "kissproxy.conf")

DEFAULT_BAUD = 57600
DEFAULT_TCP_PORT = 8910


@dataclass
class ProxyConfig:
    """Settings for one serial-device/TCP-port pairing."""

    com_port: str
    id: str = ""
    baud: int = DEFAULT_BAUD
    tcp_port: int = DEFAULT_TCP_PORT
    any_host: bool = False
    mqtt_server: str | None = None
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_topic: str | None = None
    base64: bool = False

    def __post_init__(self) -> None:
        if not self.com_port:
            raise ConfigurationError("A COM port is required")
        if not 0 <= self.tcp_port <= 65535:
            raise ConfigurationError(f"TCP port must be 0-65535, got {self.tcp_port}")
        if self.baud <= 0:
            raise ConfigurationError(f"Baud rate must be positive, got {self.baud}")

    @property
    def name(self) -> str:
        """Name used in log prefixes and telemetry topics."""
        return self.id or self.com_port.split("/")[-1]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProxyConfig:
        """Build a config from a JSON object, ignoring unknown keys."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Instance entry must be an object, got {type(data).__name__}")

        known = {_normalise_key(f.name): f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            match = known.get(_normalise_key(key))
            if match is not None:
                kwargs[match.name] = value

        if "com_port" not in kwargs:
            raise ConfigurationError(f"Instance {data.get('Id', data.get('id', '?'))!r} has no ComPort")

        for name in ("baud", "tcp_port"):
            if name in kwargs and (isinstance(kwargs[name], bool) or not isinstance(kwargs[name], int)):
                raise ConfigurationError(f"{name} must be an integer, got {kwargs[name]!r}")
        for name in ("any_host", "base64"):
            if name in kwargs and not isinstance(kwargs[name], bool):
                raise ConfigurationError(f"{name} must be true or false, got {kwargs[name]!r}")

        return cls(**kwargs)


def _normalise_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def parse_config(text: str) -> list[ProxyConfig]:
    """Parse the JSON text of a configuration file.

    Raises:
        ConfigurationError: If the JSON is malformed or an entry is invalid.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error reading config file: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError("Config file must contain a JSON array of instances")

    configs = [ProxyConfig.from_dict(entry) for entry in data]

    ports = [c.tcp_port for c in configs]
    duplicates = sorted({p for p in ports if ports.count(p) > 1})
    if duplicates:
        raise ConfigurationError(f"TCP ports used by more than one instance: {duplicates}")

    return configs


def load_config(path: str | Path) -> list[ProxyConfig]:
    """Read and parse a configuration file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Could not read {path}: {e}") from e
    return parse_config(text)


def find_config_file(search_paths: tuple[str, ...] = CONFIG_SEARCH_PATHS) -> Path | None:
    """Return the first existing configuration file, or ``None``."""
    for candidate in search_paths:
        path = Path(candidate)
        if path.is_file():
            return path
    return None

"""MQTT telemetry sink built on paho-mqtt.

The paho network loop runs in its own thread and reconnects on its own,
so ``publish`` only queues a message and never waits on the broker.
"""

from __future__ import annotations

import logging
from typing import Protocol

import paho.mqtt.client as mqtt

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MQTT_PORT = 1883
RECONNECT_DELAY = 5  # seconds
KEEPALIVE = 60
QOS_EXACTLY_ONCE = 2


class TelemetrySink(Protocol):
    """Destination for published telemetry."""

    def publish(self, topic: str, payload: bytes | str, qos: int = QOS_EXACTLY_ONCE) -> None:
        ...


def split_mqtt_server(server: str) -> tuple[str, int]:
    """Split ``host[:port]``; the port defaults to 1883.

    A port that is not a number is ignored, so ``"broker:x"`` uses 1883.
    """
    parts = server.split(":")
    if len(parts) == 2 and parts[1].isdigit():
        return parts[0], int(parts[1])
    return parts[0], DEFAULT_MQTT_PORT


class MqttSink:
    """Publishes telemetry to an MQTT broker.

    Usage::

        sink = MqttSink("broker.local:1883", client_id="host_kissproxy_radio1")
        sink.start()
        sink.publish("kissproxy/host/radio1/fromModem/framed", frame)
        sink.stop()
    """

    def __init__(
        self,
        server: str,
        client_id: str,
        username: str | None = None,
        password: str | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        if not server:
            raise ConfigurationError("MQTT server must not be empty")
        self._host, self._port = split_mqtt_server(server)
        self._log = log or logger

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )
        if username:
            self._client.username_pw_set(username, password)
        self._client.reconnect_delay_set(min_delay=RECONNECT_DELAY, max_delay=RECONNECT_DELAY)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_connect_fail = self._on_connect_fail

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def start(self) -> None:
        """Begin connecting in the background; retries until stopped."""
        self._log.info("Connecting to MQTT broker %s:%d...", self._host, self._port)
        self._client.connect_async(self._host, self._port, keepalive=KEEPALIVE)
        self._client.loop_start()

    def stop(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()

    def publish(self, topic: str, payload: bytes | str, qos: int = QOS_EXACTLY_ONCE) -> None:
        """Queue a message for delivery."""
        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._log.debug(
                "Publish to %s queued with rc=%s: %s",
                topic,
                info.rc,
                mqtt.error_string(info.rc),
            )

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self._log.warning("Failed to connect to MQTT broker: %s", reason_code)
        else:
            self._log.info("Connected to MQTT broker")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._log.warning("Disconnected from MQTT broker: %s", reason_code)

    def _on_connect_fail(self, client, userdata) -> None:
        self._log.warning("Failed to connect to MQTT broker %s:%d", self._host, self._port)

"""Command-line entry point.

Runs a single proxy described by command-line options, or every
instance in a JSON configuration file when one is found (in which case
the instance options on the command line are ignored).
"""

from __future__ import annotations

import argparse
import logging
import threading

from .config import (
    DEFAULT_BAUD,
    DEFAULT_TCP_PORT,
    ProxyConfig,
    find_config_file,
    load_config,
)
from .errors import ConfigurationError
from .proxy import Proxy
from .telemetry.describer import Ax2TxtDescriber
from .telemetry.dispatcher import machine_id
from .telemetry.mqtt import MqttSink
from .utils.log import InstanceLogger, configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kissproxy",
        description="Serial-to-TCP proxy for serial KISS modems, including MQTT tracing support.",
    )
    parser.add_argument("-c", "--comport", help="The COM port the modem is connected to, e.g. /dev/ttyACM0")
    parser.add_argument("-b", "--baud", type=int, default=DEFAULT_BAUD, help="The baud rate of the modem")
    parser.add_argument("-p", "--tcpport", type=int, default=DEFAULT_TCP_PORT, help="The TCP port to listen on")
    parser.add_argument(
        "-a", "--anyhost",
        action="store_true",
        help="Accept connections from any host, instead of just localhost",
    )
    parser.add_argument("-m", "--mqtt-server", help="MQTT server to forward KISS frames to, host[:port]")
    parser.add_argument("-mu", "--mqtt-user", help="MQTT username")
    parser.add_argument("-mp", "--mqtt-pass", help="MQTT password")
    parser.add_argument("-mt", "--mqtt-topic", help="MQTT topic root (default: kissproxy)")
    parser.add_argument("--base64", action="store_true", help="Publish base64 strings rather than raw bytes")
    parser.add_argument("--config", help="JSON config file (default: /etc/kissproxy.conf, then ./kissproxy.conf)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ProxyConfig:
    """Build a single-instance config from parsed command-line options."""
    return ProxyConfig(
        com_port=args.comport,
        baud=args.baud,
        tcp_port=args.tcpport,
        any_host=args.anyhost,
        mqtt_server=args.mqtt_server,
        mqtt_username=args.mqtt_user,
        mqtt_password=args.mqtt_pass,
        mqtt_topic=args.mqtt_topic,
        base64=args.base64,
    )


def build_proxy(config: ProxyConfig, machine: str | None = None) -> tuple[Proxy, MqttSink | None]:
    """Create a proxy with its MQTT sink (if configured) and describer."""
    machine = machine or machine_id()
    sink = None
    if config.mqtt_server:
        sink = MqttSink(
            config.mqtt_server,
            client_id=f"{machine}_kissproxy_{config.name}",
            username=config.mqtt_username,
            password=config.mqtt_password,
            log=InstanceLogger(logging.getLogger(MqttSink.__module__), config.id),
        )
    return Proxy(config, sink=sink, describer=Ax2TxtDescriber(), machine=machine), sink


def run_proxies(proxies: list[Proxy], sinks: list[MqttSink]) -> None:
    """Run every proxy on its own thread until all have ended.

    Ctrl-C stops them all.
    """
    for sink in sinks:
        sink.start()

    threads = [
        threading.Thread(target=p.run, name=f"proxy-{p.config.name}", daemon=True)
        for p in proxies
    ]
    for thread in threads:
        thread.start()

    try:
        for thread in threads:
            while thread.is_alive():
                thread.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Stopping...")
        for proxy in proxies:
            proxy.stop()
        for thread in threads:
            thread.join(timeout=5.0)
    finally:
        for sink in sinks:
            sink.stop()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    config_file = args.config or find_config_file()
    try:
        if config_file is not None:
            logger.info("Using %s and ignoring any command line parameters", config_file)
            configs = load_config(config_file)
        else:
            if not args.comport:
                parser.error("--comport is required when no config file is present")
            configs = [config_from_args(args)]
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    if not configs:
        logger.error("No proxy instances configured")
        return 1

    built = [build_proxy(config) for config in configs]
    run_proxies(
        [proxy for proxy, _ in built],
        [sink for _, sink in built if sink is not None],
    )
    return 0

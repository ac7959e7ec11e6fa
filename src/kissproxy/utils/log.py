"""Logging setup and the instance-scoped logger adapter."""

from __future__ import annotations

import logging
import time

LOG_FORMAT = "%(asctime)sZ  %(levelname)-7s %(message)s"
DATE_FORMAT = "%H:%M:%S"


class InstanceLogger(logging.LoggerAdapter):
    """Prefixes every message with the proxy instance name.

    An empty instance name leaves messages untouched, which is how a
    single command-line proxy logs.
    """

    def __init__(self, logger: logging.Logger, instance: str = "") -> None:
        super().__init__(logger, {"instance": instance})
        self.instance = instance

    def process(self, msg, kwargs):
        if self.instance:
            msg = f"[{self.instance}] {msg}"
        return msg, kwargs


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging with UTC timestamps."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    logging.Formatter.converter = time.gmtime
    # paho logs every packet at DEBUG
    logging.getLogger("paho").setLevel(logging.INFO)

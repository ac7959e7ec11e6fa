"""Telemetry: MQTT publishing and frame descriptions."""

from .describer import Ax2TxtDescriber, FrameDescriber
from .dispatcher import TelemetryDispatcher
from .mqtt import MqttSink, TelemetrySink

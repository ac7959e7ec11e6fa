"""Serial-to-TCP proxy for KISS modems with MQTT frame tracing."""

__version__ = "0.1.0"

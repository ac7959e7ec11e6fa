"""Transport layer: the modem serial port and the node TCP connection."""

from .serial_port import SerialPort
from .tcp import NodeConnection, open_listener

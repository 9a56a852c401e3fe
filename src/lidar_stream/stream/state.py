"""
Connection State
================

Coarse connection status published by LidarStreamClient.

Transitions:
    DISCONNECTED -> CONNECTING   start()
    CONNECTING   -> CONNECTED    first frame decoded on a new socket
    any running  -> ERROR        connect, read or decode failure
    ERROR        -> CONNECTING   after the reconnect delay
    any          -> DISCONNECTED stop() / close()

ERROR and DISCONNECTED are retried identically; the distinction is only
a hint for status indicators.
"""

from enum import Enum


class ConnectionState(str, Enum):
    """Connection status of a LidarStreamClient."""

    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"

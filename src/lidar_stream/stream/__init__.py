"""
Stream Module
=============

TCP stream consumption, frame decoding and fan-out components.

This module provides the ingestion layer for lidar-stream:
    - PolarPoint / LidarFrame: Immutable scan data model
    - decode / encode: Binary frame codec
    - FrameBroadcast: Replay-1 fan-out (drops oldest on overflow)
    - LidarStreamClient: TCP client with automatic reconnection
    - ConnectionState: Observable client status

Example:
    from lidar_stream.stream import LidarStreamClient

    client = LidarStreamClient("127.0.0.1", 9999, reconnect_delay_ms=1000)
    client.start()

    subscription = client.subscribe()
    while True:
        frame = await subscription.get()
        process(frame)
"""

from lidar_stream.stream.frame import LidarFrame, PolarPoint
from lidar_stream.stream.errors import (
    ConnectFailure,
    MalformedFrame,
    ReadFailure,
    StreamError,
)
from lidar_stream.stream.codec import decode, encode
from lidar_stream.stream.state import ConnectionState
from lidar_stream.stream.broadcast import FrameBroadcast, Subscription
from lidar_stream.stream.client import LidarStreamClient, StreamClientMetrics


__all__ = [
    "ConnectFailure",
    "ConnectionState",
    "FrameBroadcast",
    "LidarFrame",
    "LidarStreamClient",
    "MalformedFrame",
    "PolarPoint",
    "ReadFailure",
    "StreamClientMetrics",
    "StreamError",
    "Subscription",
    "decode",
    "encode",
]

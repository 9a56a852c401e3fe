"""
lidar-stream
============

Resilient TCP client for streaming LiDAR scans.

This package receives binary scan frames from a LiDAR sender over a raw
TCP socket, decodes them, and fans them out to any number of async
consumers. Connection failures are retried indefinitely.

Components:
    - stream: Frame model, codec, fan-out channel and TCP client
    - monitor: Consumer-side frame rate and sensor delay statistics
    - simulator: Synthetic sender for development and tests
    - config: YAML/environment configuration

Example:
    from lidar_stream.config import load_config
    from lidar_stream.stream import LidarStreamClient

    settings = load_config()
    async with LidarStreamClient.from_config(settings.stream) as client:
        async for frame in client.subscribe():
            print(frame)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]

"""
LiDAR Simulator
===============

Synthetic LiDAR sender speaking the same wire protocol as the device.

Every connected client receives an independent stream of scans at a fixed
rate. Useful for exercising the client without hardware.

Example:
    async with LidarSimulator(port=9999, rate_hz=10.0) as sim:
        await asyncio.sleep(60)
"""

import asyncio
import logging
import time
from typing import Optional, Set

import numpy as np

from lidar_stream.stream.codec import encode
from lidar_stream.stream.frame import LidarFrame, PolarPoint


logger = logging.getLogger(__name__)


def make_scan(
    points_per_frame: int,
    timestamp_ms: int,
    phase: float = 0.0,
    base_mm: float = 2000.0,
    ripple_mm: float = 600.0,
) -> LidarFrame:
    """
    Build one synthetic scan.

    Angles are evenly spaced over a full turn; distances follow a slowly
    rotating ripple around base_mm.

    Args:
        points_per_frame: Number of samples
        timestamp_ms: Sender timestamp for the frame
        phase: Ripple phase in radians
        base_mm: Mean distance
        ripple_mm: Ripple amplitude
    """
    angles = np.linspace(0.0, 360.0, num=points_per_frame, endpoint=False, dtype=np.float32)
    radians = np.deg2rad(angles.astype(np.float64))
    distances = base_mm + ripple_mm * np.sin(3.0 * radians + phase)
    distances = np.clip(np.rint(distances), 0, 0xFFFF).astype(np.uint16)

    points = tuple(
        PolarPoint(angle_deg=angle, distance_mm=distance)
        for angle, distance in zip(angles.tolist(), distances.tolist())
    )
    return LidarFrame(timestamp_ms=timestamp_ms, points=points)


class LidarSimulator:
    """
    Asyncio TCP server streaming synthetic scans.

    Attributes:
        host: Bind address
        points_per_frame: Samples per scan
        rate_hz: Scans per second per client
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9999,
        points_per_frame: int = 360,
        rate_hz: float = 10.0,
    ) -> None:
        if points_per_frame < 0:
            raise ValueError("points_per_frame must be >= 0")
        if rate_hz <= 0:
            raise ValueError("rate_hz must be > 0")

        self.host = host
        self.points_per_frame = points_per_frame
        self.rate_hz = rate_hz

        self._requested_port = port
        self._server: Optional[asyncio.AbstractServer] = None
        self._handlers: Set[asyncio.Task] = set()
        self.frames_sent: int = 0

    @property
    def port(self) -> int:
        """Bound port (resolves port 0 once started)."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._requested_port

    @property
    def client_count(self) -> int:
        """Number of connected clients."""
        return len(self._handlers)

    async def start(self) -> None:
        """Begin listening."""
        if self._server is not None:
            return
        self._server = await asyncio.start_server(
            self._handle_client,
            self.host,
            self._requested_port,
        )
        logger.info(
            f"Simulator listening on {self.host}:{self.port} "
            f"({self.points_per_frame} points @ {self.rate_hz:.1f} Hz)"
        )

    async def stop(self) -> None:
        """Stop listening and disconnect every client."""
        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.wait(set(self._handlers))
        await server.wait_closed()
        logger.info("Simulator stopped")

    async def serve_forever(self) -> None:
        """Start and block until cancelled."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> "LidarSimulator":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)

        peer = writer.get_extra_info("peername")
        logger.info(f"Client connected: {peer}")

        interval = 1.0 / self.rate_hz
        phase = 0.0
        try:
            while True:
                frame = make_scan(
                    self.points_per_frame,
                    timestamp_ms=time.time_ns() // 1_000_000,
                    phase=phase,
                )
                writer.write(encode(frame))
                await writer.drain()
                self.frames_sent += 1
                phase += 0.1
                await asyncio.sleep(interval)
        except (ConnectionError, OSError) as e:
            logger.info(f"Client {peer} disconnected: {e}")
        finally:
            if task is not None:
                self._handlers.discard(task)
            writer.close()

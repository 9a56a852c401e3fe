"""
Stream Monitor
==============

Consumer-side statistics for a frame subscription.

Tracks how many frames arrived, the observed frame rate, and the delay
between the sender timestamp and local receipt. Intended for health
logging and the `lidar-stream monitor` command.

Design Rules:
    - Reads frames, never modifies them
    - FPS is recomputed once per second of frames, not per frame
    - Delay assumes the sender stamps frames with wall-clock milliseconds
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from lidar_stream.stream.broadcast import Subscription
from lidar_stream.stream.frame import LidarFrame


logger = logging.getLogger(__name__)


FPS_WINDOW_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class MonitorSnapshot:
    """Point-in-time view of StreamMonitor statistics."""

    frames_seen: int
    fps: float
    last_delay_ms: Optional[int]
    last_num_points: int
    last_timestamp_ms: Optional[int]


class StreamMonitor:
    """
    Frame rate and sensor delay tracker.

    Example:
        monitor = StreamMonitor(client.subscribe(), report_interval=5.0)
        stop = asyncio.Event()
        summary = await monitor.run(stop)
    """

    def __init__(
        self,
        subscription: Optional[Subscription] = None,
        report_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize monitor.

        Args:
            subscription: Frames to consume in run(). Not needed for record().
            report_interval: Seconds between progress log lines
            clock: Monotonic clock in seconds
        """
        if report_interval <= 0:
            raise ValueError("report_interval must be > 0")

        self._subscription = subscription
        self._report_interval = report_interval
        self._clock = clock

        self._frames_seen: int = 0
        self._fps: float = 0.0
        self._window_start: Optional[float] = None
        self._window_frames: int = 0
        self._last_delay_ms: Optional[int] = None
        self._last_num_points: int = 0
        self._last_timestamp_ms: Optional[int] = None

    @property
    def frames_seen(self) -> int:
        """Total frames recorded."""
        return self._frames_seen

    @property
    def fps(self) -> float:
        """Frames per second over the last full window."""
        return self._fps

    def record(
        self,
        frame: LidarFrame,
        now: Optional[float] = None,
        now_ms: Optional[int] = None,
    ) -> None:
        """
        Account for one received frame.

        Args:
            frame: Frame just received
            now: Monotonic receipt time in seconds. Defaults to the clock.
            now_ms: Wall-clock receipt time in ms for the delay estimate
        """
        if now is None:
            now = self._clock()

        self._frames_seen += 1
        self._last_delay_ms = frame.age_ms(now_ms)
        self._last_num_points = frame.num_points
        self._last_timestamp_ms = frame.timestamp_ms

        if self._window_start is None:
            self._window_start = now
            return

        self._window_frames += 1
        elapsed = now - self._window_start
        if elapsed >= FPS_WINDOW_SECONDS:
            self._fps = self._window_frames / elapsed
            self._window_frames = 0
            self._window_start = now

    def snapshot(self) -> MonitorSnapshot:
        """Current statistics."""
        return MonitorSnapshot(
            frames_seen=self._frames_seen,
            fps=self._fps,
            last_delay_ms=self._last_delay_ms,
            last_num_points=self._last_num_points,
            last_timestamp_ms=self._last_timestamp_ms,
        )

    async def run(self, stop_event: asyncio.Event) -> MonitorSnapshot:
        """
        Consume the subscription until stop_event is set or it ends.

        Logs a progress report every report_interval seconds.

        Returns:
            Final snapshot
        """
        if self._subscription is None:
            raise RuntimeError("StreamMonitor.run requires a subscription")

        last_report = self._clock()
        while not stop_event.is_set():
            frame = await self._subscription.get(timeout=0.5)
            if frame is not None:
                self.record(frame)
            elif self._subscription.closed:
                logger.info("Subscription closed, monitor exiting")
                break

            if self._clock() - last_report >= self._report_interval:
                self.report()
                last_report = self._clock()

        return self.snapshot()

    def report(self) -> None:
        """Log a progress line."""
        snap = self.snapshot()
        delay = "n/a" if snap.last_delay_ms is None else f"{snap.last_delay_ms} ms"
        dropped = self._subscription.dropped_count if self._subscription else 0
        logger.info(
            f"Frames: {snap.frames_seen}, FPS: {snap.fps:.1f}, "
            f"delay: {delay}, points: {snap.last_num_points}, "
            f"dropped: {dropped}"
        )

"""
Frame Broadcast
===============

Multi-subscriber fan-out for decoded frames.

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest undelivered frame is discarded to
make room, so slow consumers always catch up to the freshest scan
instead of stalling the reader task.

Design Rules:
    - publish() is synchronous and never raises for a full subscriber
    - New subscribers are seeded with the latest frame (replay-1)
    - Drop-oldest only removes frames, it never reorders them
    - Does NOT process or modify frames
    - All state lives on the event loop thread; no consumer-side locking
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from lidar_stream.stream.frame import LidarFrame


logger = logging.getLogger(__name__)


_END = object()


class Subscription:
    """
    One consumer's view of a FrameBroadcast.

    Obtained from FrameBroadcast.subscribe(); not created directly.
    A subscription is meant to be drained by a single reader task.

    Example:
        async with broadcast.subscribe() as frames:
            async for frame in frames:
                process(frame)
    """

    def __init__(self, broadcast: "FrameBroadcast", capacity: int) -> None:
        self._broadcast = broadcast
        self._capacity = capacity
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._dropped_count: int = 0
        self._delivered_count: int = 0
        self._closed: bool = False
        self._end_queued: bool = False

    @property
    def capacity(self) -> int:
        """Maximum number of undelivered frames held."""
        return self._capacity

    @property
    def pending(self) -> int:
        """Number of frames waiting to be read."""
        size = self._queue.qsize()
        if self._end_queued:
            # End marker is not a frame
            return size - 1
        return size

    @property
    def dropped_count(self) -> int:
        """Frames discarded because this subscriber fell behind."""
        return self._dropped_count

    @property
    def delivered_count(self) -> int:
        """Frames handed to this subscriber's reader."""
        return self._delivered_count

    @property
    def closed(self) -> bool:
        """Whether the subscription has been ended."""
        return self._closed

    def _offer(self, frame: LidarFrame) -> bool:
        """
        Enqueue a frame, dropping the oldest pending one if full.

        Returns:
            True if nothing was dropped, False otherwise.
        """
        if self._closed:
            return True

        dropped = False
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
                dropped = True
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(frame)
        return not dropped

    def _end(self) -> None:
        """Mark end of stream and wake a waiting reader."""
        if self._closed:
            return
        self._closed = True
        # A full queue means nobody is blocked in get()
        if not self._queue.full():
            self._queue.put_nowait(_END)
            self._end_queued = True

    def _unwrap(self, item: object) -> Optional[LidarFrame]:
        if item is _END:
            # Leave the marker in place for later readers
            self._queue.put_nowait(_END)
            return None
        self._delivered_count += 1
        return item  # type: ignore[return-value]

    async def get(self, timeout: Optional[float] = None) -> Optional[LidarFrame]:
        """
        Wait for the next frame.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next frame, or None on timeout or once the subscription ended.
        """
        if self._closed and self._queue.empty():
            return None
        try:
            if timeout is not None:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                item = await self._queue.get()
        except asyncio.TimeoutError:
            return None
        return self._unwrap(item)

    def get_nowait(self) -> Optional[LidarFrame]:
        """
        Get the next frame without waiting.

        Returns:
            Next frame if one is pending, None otherwise.
        """
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return self._unwrap(item)

    def close(self) -> None:
        """Unsubscribe. Frames already queued can still be read."""
        self._broadcast._remove(self)
        self._end()

    def __aiter__(self) -> AsyncIterator[LidarFrame]:
        return self

    async def __anext__(self) -> LidarFrame:
        frame = await self.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Subscription(pending={self.pending}, "
            f"dropped={self._dropped_count}, closed={self._closed})"
        )


class FrameBroadcast:
    """
    Fan-out channel with replay-1 and per-subscriber drop-oldest buffering.

    Attributes:
        capacity: Per-subscriber buffer size
        latest: Most recently published frame, if any

    Example:
        broadcast = FrameBroadcast(capacity=32)
        subscription = broadcast.subscribe()

        # Producer (never blocks)
        broadcast.publish(frame)

        # Consumer
        frame = await subscription.get()
    """

    def __init__(self, capacity: int = 32) -> None:
        """
        Initialize broadcast channel.

        Args:
            capacity: Frames buffered per subscriber. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._subscriptions: List[Subscription] = []
        self._latest: Optional[LidarFrame] = None
        self._total_published: int = 0
        self._dropped_count: int = 0

    @property
    def capacity(self) -> int:
        """Per-subscriber buffer size."""
        return self._capacity

    @property
    def latest(self) -> Optional[LidarFrame]:
        """Most recently published frame."""
        return self._latest

    @property
    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)

    @property
    def total_published(self) -> int:
        """Total frames ever published."""
        return self._total_published

    @property
    def dropped_count(self) -> int:
        """Frames dropped across all subscribers."""
        return self._dropped_count

    def subscribe(self, replay: bool = True) -> Subscription:
        """
        Register a new consumer.

        Args:
            replay: Seed the subscription with the latest frame, if any.

        Returns:
            Subscription receiving every frame published from now on.
        """
        subscription = Subscription(self, self._capacity)
        if replay and self._latest is not None:
            subscription._offer(self._latest)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscriber added, total: {len(self._subscriptions)}")
        return subscription

    def publish(self, frame: LidarFrame) -> None:
        """
        Hand a frame to every subscriber without blocking.

        Args:
            frame: Frame to distribute
        """
        self._latest = frame
        self._total_published += 1

        for subscription in self._subscriptions:
            if not subscription._offer(frame):
                self._dropped_count += 1
                logger.debug(
                    f"Subscriber behind, dropped oldest frame. "
                    f"Total dropped: {self._dropped_count}"
                )

    def close(self) -> None:
        """
        End every current subscription and forget the latest frame.

        The broadcast remains usable; later subscribers start fresh.
        """
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription._end()
        self._latest = None

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug(f"Subscriber removed, total: {len(self._subscriptions)}")

    def metrics(self) -> dict:
        """
        Get broadcast metrics for observability.

        Returns:
            Dict with capacity, subscribers, total_published, dropped_count
        """
        return {
            "capacity": self._capacity,
            "subscribers": len(self._subscriptions),
            "total_published": self._total_published,
            "dropped_count": self._dropped_count,
        }

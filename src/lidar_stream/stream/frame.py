"""
Frame Data Model
=================

Immutable scan representation shared by the codec, the client and every
subscriber.

Design Rules:
    - Frames are built atomically by the codec and never mutated
    - Angles and distances are passed through exactly as received
    - The sender timestamp is opaque; it is only used for delay estimates
"""

import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True, slots=True)
class PolarPoint:
    """
    One LiDAR sample.

    Attributes:
        angle_deg: Beam angle in degrees (float32 on the wire, not normalized)
        distance_mm: Measured distance in millimeters (0-65535)
    """

    angle_deg: float
    distance_mm: int


@dataclass(frozen=True, slots=True)
class LidarFrame:
    """
    One complete scan decoded from a single wire message.

    Attributes:
        timestamp_ms: Sender-supplied milliseconds since an unspecified epoch
        points: Samples in wire order. Length equals the header point count.
    """

    timestamp_ms: int
    points: Tuple[PolarPoint, ...] = ()

    @property
    def num_points(self) -> int:
        """Number of samples in the scan."""
        return len(self.points)

    def age_ms(self, now_ms: Optional[int] = None) -> int:
        """
        Milliseconds between the sender timestamp and now.

        Only meaningful when the sender stamps frames with wall-clock
        time. Can be negative if the two clocks disagree.

        Args:
            now_ms: Reference time in ms. Defaults to the local wall clock.
        """
        if now_ms is None:
            now_ms = time.time_ns() // 1_000_000
        return now_ms - self.timestamp_ms

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the samples as column arrays.

        Returns:
            (angles float32, distances uint16), both of length num_points
        """
        angles = np.fromiter(
            (p.angle_deg for p in self.points),
            dtype=np.float32,
            count=len(self.points),
        )
        distances = np.fromiter(
            (p.distance_mm for p in self.points),
            dtype=np.uint16,
            count=len(self.points),
        )
        return angles, distances

    def __repr__(self) -> str:
        """Compact repr that doesn't dump every point."""
        return (
            f"LidarFrame(timestamp_ms={self.timestamp_ms}, "
            f"num_points={len(self.points)})"
        )

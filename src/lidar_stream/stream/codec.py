"""
Frame Codec
===========

Binary framing used by the LiDAR sender.

Wire layout (little-endian):

    offset      size  field
    0           4     num_points   (uint32)
    4           8     timestamp_ms (uint64)
    12 + 6*i    4     angle_deg    (float32) of point i
    16 + 6*i    2     distance_mm  (uint16)  of point i

Design Rules:
    - decode() is pure: same bytes in, same frame out, no side effects
    - The total length must match the header exactly, no slack allowed
    - Angle and distance values are not interpreted or normalized
"""

import struct
from typing import Tuple

import numpy as np

from lidar_stream.stream.errors import MalformedFrame
from lidar_stream.stream.frame import LidarFrame, PolarPoint


HEADER_SIZE = 12
POINT_SIZE = 6

_HEADER = struct.Struct("<IQ")
_POINT_DTYPE = np.dtype([("angle_deg", "<f4"), ("distance_mm", "<u2")])

_MAX_DISTANCE = 0xFFFF
_MAX_TIMESTAMP = 0xFFFFFFFFFFFFFFFF


def frame_size(num_points: int) -> int:
    """Total wire size of a frame carrying num_points samples."""
    return HEADER_SIZE + num_points * POINT_SIZE


def parse_header(buffer: bytes) -> Tuple[int, int]:
    """
    Read the fixed header at the start of a buffer.

    Args:
        buffer: At least HEADER_SIZE bytes

    Returns:
        Tuple of (num_points, timestamp_ms)

    Raises:
        MalformedFrame: If the buffer is shorter than the header
    """
    if len(buffer) < HEADER_SIZE:
        raise MalformedFrame(
            f"truncated header: need {HEADER_SIZE} bytes, got {len(buffer)}",
            expected=HEADER_SIZE,
            actual=len(buffer),
        )
    return _HEADER.unpack_from(buffer, 0)


def decode(buffer: bytes) -> LidarFrame:
    """
    Decode one complete wire message into a LidarFrame.

    Args:
        buffer: Header plus payload, exactly as read from the socket

    Returns:
        Fully populated LidarFrame

    Raises:
        MalformedFrame: On a truncated header or a size mismatch
    """
    num_points, timestamp_ms = parse_header(buffer)

    expected = frame_size(num_points)
    if len(buffer) != expected:
        raise MalformedFrame(
            f"size mismatch: expected={expected}, actual={len(buffer)}",
            expected=expected,
            actual=len(buffer),
        )

    if num_points == 0:
        return LidarFrame(timestamp_ms=timestamp_ms, points=())

    samples = np.frombuffer(
        buffer,
        dtype=_POINT_DTYPE,
        count=num_points,
        offset=HEADER_SIZE,
    )
    points = tuple(
        PolarPoint(angle_deg=angle, distance_mm=distance)
        for angle, distance in samples.tolist()
    )
    return LidarFrame(timestamp_ms=timestamp_ms, points=points)


def encode(frame: LidarFrame) -> bytes:
    """
    Serialize a LidarFrame into its wire representation.

    Angles are narrowed to float32, so decode(encode(f)) only equals f
    when every angle is already representable as float32.

    Raises:
        ValueError: If the timestamp or a distance is out of range
    """
    if not 0 <= frame.timestamp_ms <= _MAX_TIMESTAMP:
        raise ValueError(f"timestamp_ms out of uint64 range: {frame.timestamp_ms}")

    for index, point in enumerate(frame.points):
        if not 0 <= point.distance_mm <= _MAX_DISTANCE:
            raise ValueError(
                f"distance_mm out of uint16 range at point {index}: "
                f"{point.distance_mm}"
            )

    angles, distances = frame.as_arrays()
    samples = np.empty(frame.num_points, dtype=_POINT_DTYPE)
    samples["angle_deg"] = angles
    samples["distance_mm"] = distances

    return _HEADER.pack(frame.num_points, frame.timestamp_ms) + samples.tobytes()

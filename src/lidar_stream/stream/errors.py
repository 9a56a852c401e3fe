"""
Stream Errors
=============

Failure taxonomy for the LiDAR stream ingestion layer.

All of these are routine, expected failures. They are raised inside the
client's reader task and handled by its retry loop; none of them ever
reach the owner of a LidarStreamClient.

Hierarchy:
    StreamError
        ConnectFailure  - timeout or refusal while opening the socket
        ReadFailure     - timeout, early EOF or transport error mid-frame
        MalformedFrame  - codec rejected the bytes (bad header / size)
"""

from typing import Optional


class StreamError(Exception):
    """Base class for recoverable stream failures."""
    pass


class ConnectFailure(StreamError):
    """Raised when the TCP connection cannot be established."""
    pass


class ReadFailure(StreamError):
    """Raised when a header or payload read does not complete."""
    pass


class MalformedFrame(StreamError):
    """
    Raised when a buffer does not describe a valid frame.

    Attributes:
        expected: Expected buffer length in bytes, when known
        actual: Actual buffer length in bytes, when known
    """

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual

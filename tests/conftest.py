"""
Test Configuration
==================

Pytest fixtures and test configuration for lidar-stream.

Async behaviour is exercised from plain synchronous tests through the
run_async fixture, against real loopback TCP servers.
"""

import asyncio
import socket
import struct
from typing import Awaitable, Callable, List, Optional, Set

import pytest

from lidar_stream.stream.frame import LidarFrame, PolarPoint


Handler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


class FrameServer:
    """
    Loopback TCP server driving a scripted handler per connection.

    Records accept times and how many connections are open at once.
    """

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set[asyncio.Task] = set()
        self.connection_times: List[float] = []
        self.active: int = 0
        self.max_active: int = 0

    @property
    def port(self) -> int:
        """Port the server is listening on."""
        return self._server.sockets[0].getsockname()[1]

    @property
    def connections(self) -> int:
        """Connections accepted so far."""
        return len(self.connection_times)

    async def __aenter__(self) -> "FrameServer":
        self._server = await asyncio.start_server(self._on_client, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *args) -> None:
        self._server.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.wait(set(self._tasks))
        await self._server.wait_closed()

    async def _on_client(self, reader, writer) -> None:
        task = asyncio.current_task()
        self._tasks.add(task)
        self.connection_times.append(asyncio.get_running_loop().time())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self._handler(reader, writer)
        except (ConnectionError, OSError):
            pass
        finally:
            self.active -= 1
            self._tasks.discard(task)
            writer.transport.abort()


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll predicate until true or timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True


def make_frame(timestamp_ms: int = 1000, num_points: int = 3) -> LidarFrame:
    """Frame whose angles and distances are exact in float32/uint16."""
    return LidarFrame(
        timestamp_ms=timestamp_ms,
        points=tuple(
            PolarPoint(angle_deg=float(i) * 1.5, distance_mm=100 + i)
            for i in range(num_points)
        ),
    )


@pytest.fixture
def run_async():
    """Run a coroutine to completion with a safety timeout."""
    def runner(coro, timeout: float = 15.0):
        return asyncio.run(asyncio.wait_for(coro, timeout=timeout))
    return runner


@pytest.fixture
def frame_server():
    """FrameServer class, used as `async with frame_server(handler)`."""
    return FrameServer


@pytest.fixture
def frame_factory():
    return make_frame


@pytest.fixture
def unused_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def sample_frame_bytes() -> bytes:
    """Two-point frame: ts=1000, (0.0, 500), (90.0, 1200)."""
    header = bytes.fromhex("02000000" "e803000000000000")
    return header + struct.pack("<fH", 0.0, 500) + struct.pack("<fH", 90.0, 1200)


@pytest.fixture
def sample_frame() -> LidarFrame:
    return LidarFrame(
        timestamp_ms=1000,
        points=(
            PolarPoint(angle_deg=0.0, distance_mm=500),
            PolarPoint(angle_deg=90.0, distance_mm=1200),
        ),
    )


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until

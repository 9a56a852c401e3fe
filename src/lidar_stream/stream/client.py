"""
LiDAR Stream Client
===================

Async TCP client for consuming scans from a LiDAR sender.

This client:
    - Connects to the sender with bounded connect and read timeouts
    - Reads one header + payload at a time and decodes it
    - Publishes each frame to a FrameBroadcast (replay-1, drop-oldest)
    - Reconnects after a fixed delay on any failure, forever

Example:
    client = LidarStreamClient("192.168.1.50", 9999, reconnect_delay_ms=1000)
    client.start()

    async with client.subscribe() as frames:
        async for frame in frames:
            print(frame.timestamp_ms, frame.num_points)

    await client.aclose()

Design Rules:
    - At most one reader task and one socket per client
    - Connect, read and decode failures never escape the reader task
    - stop()/close() abort the socket immediately, wherever the task is
    - Only invalid constructor arguments raise to the caller
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from lidar_stream.stream.broadcast import FrameBroadcast, Subscription
from lidar_stream.stream.codec import HEADER_SIZE, decode, frame_size, parse_header
from lidar_stream.stream.errors import (
    ConnectFailure,
    MalformedFrame,
    ReadFailure,
    StreamError,
)
from lidar_stream.stream.frame import LidarFrame
from lidar_stream.stream.state import ConnectionState

if TYPE_CHECKING:
    from lidar_stream.config import StreamConfig


logger = logging.getLogger(__name__)


StateListener = Callable[[ConnectionState], None]


class StreamClientMetrics:
    """Metrics for LidarStreamClient observability."""

    __slots__ = (
        "connect_attempts",
        "connect_failures",
        "read_failures",
        "malformed_frames",
        "frames_received",
        "reconnect_count",
        "last_timestamp_ms",
        "last_error",
    )

    def __init__(self) -> None:
        self.connect_attempts: int = 0
        self.connect_failures: int = 0
        self.read_failures: int = 0
        self.malformed_frames: int = 0
        self.frames_received: int = 0
        self.reconnect_count: int = 0
        self.last_timestamp_ms: int = -1
        self.last_error: Optional[str] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "connect_attempts": self.connect_attempts,
            "connect_failures": self.connect_failures,
            "read_failures": self.read_failures,
            "malformed_frames": self.malformed_frames,
            "frames_received": self.frames_received,
            "reconnect_count": self.reconnect_count,
            "last_timestamp_ms": self.last_timestamp_ms,
            "last_error": self.last_error,
        }


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    """Whether the caller is running inside the given loop."""
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class LidarStreamClient:
    """
    Reconnecting TCP client for the LiDAR frame protocol.

    Attributes:
        host: Sender hostname or IP
        port: Sender TCP port
        reconnect_delay_ms: Pause between a failure and the next attempt
        connect_timeout_ms: Upper bound on socket establishment
        read_timeout_ms: Upper bound on each header/payload read
        max_points: Largest accepted point count per frame (0 = unlimited)
        metrics: Operational counters
    """

    def __init__(
        self,
        host: str,
        port: int,
        reconnect_delay_ms: int = 1000,
        *,
        connect_timeout_ms: int = 1500,
        read_timeout_ms: int = 2500,
        buffer_capacity: int = 32,
        max_points: int = 0,
    ) -> None:
        """
        Initialize stream client.

        Args:
            host: Sender hostname or IP
            port: Sender TCP port (not range-checked here)
            reconnect_delay_ms: Delay before each reconnect attempt. >= 0.
            connect_timeout_ms: Connect timeout. > 0.
            read_timeout_ms: Per-read timeout. > 0.
            buffer_capacity: Frames buffered per subscriber. >= 1.
            max_points: Reject headers announcing more points (0 = unlimited)
        """
        if not isinstance(host, str) or not host:
            raise ValueError("host must be a non-empty string")
        if reconnect_delay_ms < 0:
            raise ValueError("reconnect_delay_ms must be >= 0")
        if connect_timeout_ms <= 0:
            raise ValueError("connect_timeout_ms must be > 0")
        if read_timeout_ms <= 0:
            raise ValueError("read_timeout_ms must be > 0")
        if max_points < 0:
            raise ValueError("max_points must be >= 0")

        self.host = host
        self.port = port
        self.reconnect_delay_ms = reconnect_delay_ms
        self.connect_timeout_ms = connect_timeout_ms
        self.read_timeout_ms = read_timeout_ms
        self.max_points = max_points

        self._broadcast = FrameBroadcast(capacity=buffer_capacity)

        # State
        self._state: ConnectionState = ConnectionState.DISCONNECTED
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._state_listeners: List[StateListener] = []
        self._state_waiters: Dict[ConnectionState, List[asyncio.Future]] = {}

        # Metrics
        self.metrics = StreamClientMetrics()

    @classmethod
    def from_config(cls, config: "StreamConfig") -> "LidarStreamClient":
        """Build a client from a StreamConfig section."""
        return cls(
            host=config.host,
            port=config.port,
            reconnect_delay_ms=config.reconnect_delay_ms,
            connect_timeout_ms=config.connect_timeout_ms,
            read_timeout_ms=config.read_timeout_ms,
            buffer_capacity=config.buffer_capacity,
            max_points=config.max_points,
        )

    @property
    def address(self) -> str:
        """Sender address as host:port."""
        return f"{self.host}:{self.port}"

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def running(self) -> bool:
        """Whether a reader task is active."""
        return self._task is not None and not self._task.done()

    @property
    def frames(self) -> FrameBroadcast:
        """Output channel carrying decoded frames."""
        return self._broadcast

    def subscribe(self, replay: bool = True) -> Subscription:
        """Subscribe to decoded frames. See FrameBroadcast.subscribe."""
        return self._broadcast.subscribe(replay=replay)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Start (or restart) the reader task.

        Any running task is stopped first, so two readers never overlap.
        Must be called from the thread running the target loop.

        Args:
            loop: Event loop that owns the task. Defaults to the running loop.
        """
        self.stop()

        if loop is None:
            loop = asyncio.get_running_loop()

        self._loop = loop
        self._set_state(ConnectionState.CONNECTING)
        self._task = loop.create_task(
            self._run(),
            name=f"lidar-stream-{self.address}",
        )
        logger.info(f"LidarStreamClient starting, connecting to {self.address}")

    def stop(self) -> None:
        """
        Cancel the reader task and release the socket.

        Idempotent and safe to call from any thread. When called off the
        owning loop's thread, the cancellation is scheduled on that loop and
        this returns before the state changes; use
        wait_for_state(ConnectionState.DISCONNECTED) to observe it.
        """
        self._dispatch(self._halt)

    def close(self) -> None:
        """
        Stop and release subscriber-facing resources.

        Ends every current subscription, forgets the retained frame and
        releases pending wait_for_state() calls, which return False.
        start() may be called again.
        """
        self._dispatch(self._release)

    async def aclose(self) -> None:
        """close(), then wait for the cancelled reader task to unwind."""
        task = self._task
        self.close()
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    async def __aenter__(self) -> "LidarStreamClient":
        """Async context manager entry."""
        self.start()
        return self

    async def __aexit__(self, *args) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _dispatch(self, action: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or _on_loop(loop):
            action()
            return
        try:
            loop.call_soon_threadsafe(action)
        except RuntimeError:
            # Loop closed in the meantime, nothing can be running on it
            action()

    def _halt(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info(f"LidarStreamClient stopped ({self.address})")
        self._abort_connection()
        self._set_state(ConnectionState.DISCONNECTED)

    def _release(self) -> None:
        self._halt()
        self._broadcast.close()

        waiters, self._state_waiters = self._state_waiters, {}
        for futures in waiters.values():
            for future in futures:
                if not future.done():
                    future.set_result(None)

    def _abort_connection(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None and not writer.transport.is_closing():
            writer.transport.abort()

    # -------------------------------------------------------------------------
    # State observation
    # -------------------------------------------------------------------------

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a callback invoked on every state transition.

        Listeners run on the event loop thread and must not block.

        Returns:
            Callable that unregisters the listener.
        """
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return remove

    async def wait_for_state(
        self,
        state: ConnectionState,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Wait until the client enters the given state.

        Args:
            state: State to wait for
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            True if the state was reached, False on timeout or close().
        """
        if self._state is state:
            return True

        future = asyncio.get_running_loop().create_future()
        self._state_waiters.setdefault(state, []).append(future)
        try:
            reached = await asyncio.wait_for(future, timeout=timeout)
            return reached is state
        except asyncio.TimeoutError:
            return False
        finally:
            waiters = self._state_waiters.get(state)
            if waiters and future in waiters:
                waiters.remove(future)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return

        previous, self._state = self._state, state
        logger.info(f"Connection state {previous.value} -> {state.value} ({self.address})")

        for listener in list(self._state_listeners):
            if self._state is not state:
                # A listener moved the client on
                return
            try:
                listener(state)
            except Exception:
                logger.exception("Connection state listener failed")

        if self._state is not state:
            return
        for future in self._state_waiters.pop(state, []):
            if not future.done():
                future.set_result(state)

    def _is_current(self) -> bool:
        """Whether the calling task is still this client's reader."""
        return self._task is not None and asyncio.current_task() is self._task

    # -------------------------------------------------------------------------
    # Reader task
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        """Connect, read, publish; on failure wait and start over."""
        delay_sec = self.reconnect_delay_ms / 1000.0

        while True:
            if self._is_current():
                self._set_state(ConnectionState.CONNECTING)

            try:
                await self._connect_and_consume()
            except StreamError as e:
                if not self._is_current():
                    return
                self._record_failure(e)
            except Exception as e:
                if not self._is_current():
                    return
                self.metrics.last_error = repr(e)
                logger.exception(f"Unexpected error in reader task ({self.address})")

            if not self._is_current():
                return
            self._set_state(ConnectionState.ERROR)
            if not self._is_current():
                return

            self.metrics.reconnect_count += 1
            logger.info(
                f"Reconnecting in {delay_sec:.1f}s "
                f"(attempt {self.metrics.reconnect_count})"
            )
            await asyncio.sleep(delay_sec)

    async def _connect_and_consume(self) -> None:
        """Open a socket and publish frames until something fails."""
        self.metrics.connect_attempts += 1
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as e:
            raise ConnectFailure(
                f"connect to {self.address} timed out after {self.connect_timeout_ms} ms"
            ) from e
        except OSError as e:
            raise ConnectFailure(f"connect to {self.address} failed: {e}") from e

        if not self._is_current():
            writer.transport.abort()
            return
        self._writer = writer
        logger.info(f"Connected to LiDAR sender: {self.address}")

        try:
            while True:
                frame = await self._read_frame(reader)
                if not self._is_current():
                    return
                self._set_state(ConnectionState.CONNECTED)
                if not self._is_current():
                    return
                self.metrics.frames_received += 1
                self.metrics.last_timestamp_ms = frame.timestamp_ms
                self._broadcast.publish(frame)
                logger.debug(f"Published {frame!r}")
        finally:
            if self._writer is writer:
                self._writer = None
            writer.close()

    async def _read_frame(self, reader: asyncio.StreamReader) -> LidarFrame:
        """Read one header + payload and decode it."""
        header = await self._read_exactly(reader, HEADER_SIZE, "header")
        num_points, _ = parse_header(header)
        if self.max_points and num_points > self.max_points:
            raise MalformedFrame(
                f"header announces {num_points} points, limit is {self.max_points}"
            )
        payload = await self._read_exactly(
            reader,
            frame_size(num_points) - HEADER_SIZE,
            "payload",
        )
        return decode(header + payload)

    async def _read_exactly(
        self,
        reader: asyncio.StreamReader,
        size: int,
        what: str,
    ) -> bytes:
        try:
            return await asyncio.wait_for(
                reader.readexactly(size),
                timeout=self.read_timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as e:
            raise ReadFailure(
                f"{what} read timed out after {self.read_timeout_ms} ms"
            ) from e
        except asyncio.IncompleteReadError as e:
            raise ReadFailure(
                f"stream closed during {what} read "
                f"({len(e.partial)}/{size} bytes)"
            ) from e
        except OSError as e:
            raise ReadFailure(f"{what} read failed: {e}") from e

    def _record_failure(self, error: StreamError) -> None:
        if isinstance(error, ConnectFailure):
            self.metrics.connect_failures += 1
        elif isinstance(error, ReadFailure):
            self.metrics.read_failures += 1
        elif isinstance(error, MalformedFrame):
            self.metrics.malformed_frames += 1

        self.metrics.last_error = str(error)
        logger.warning(f"{type(error).__name__}: {error}")

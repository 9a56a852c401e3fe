"""
Simulator and CLI Tests
=======================

End-to-end runs of the client against the synthetic sender.
"""

import pytest

from lidar_stream.config import Settings
from lidar_stream.main import apply_args, build_parser, run_monitor
from lidar_stream.simulator import LidarSimulator, make_scan
from lidar_stream.stream.client import LidarStreamClient
from lidar_stream.stream.codec import decode, encode
from lidar_stream.stream.state import ConnectionState


class TestMakeScan:

    def test_shape(self):
        """Scan has the requested size and angle spacing."""
        frame = make_scan(360, timestamp_ms=123)
        assert frame.timestamp_ms == 123
        assert frame.num_points == 360
        assert frame.points[0].angle_deg == 0.0
        assert frame.points[90].angle_deg == 90.0
        assert all(0 <= p.distance_mm <= 65535 for p in frame.points)

    def test_wire_exact(self):
        """Scans survive the wire format unchanged."""
        frame = make_scan(100, timestamp_ms=5, phase=0.7)
        assert decode(encode(frame)) == frame

    def test_empty(self):
        """Zero points gives an empty scan."""
        assert make_scan(0, timestamp_ms=1).points == ()


class TestSimulator:

    def test_client_receives_scans(self, run_async):
        """Client streams scans from the simulator."""
        async def scenario():
            async with LidarSimulator(port=0, points_per_frame=90, rate_hz=50.0) as sim:
                async with LidarStreamClient("127.0.0.1", sim.port) as client:
                    subscription = client.subscribe()
                    frames = [await subscription.get(timeout=2.0) for _ in range(3)]
                    assert client.state is ConnectionState.CONNECTED
                    assert sim.client_count == 1
            return frames

        frames = run_async(scenario())
        assert all(f.num_points == 90 for f in frames)
        assert [f.timestamp_ms for f in frames] == sorted(f.timestamp_ms for f in frames)

    def test_invalid_arguments(self):
        """Invalid constructor arguments raise ValueError."""
        with pytest.raises(ValueError):
            LidarSimulator(rate_hz=0)
        with pytest.raises(ValueError):
            LidarSimulator(points_per_frame=-1)


class TestCommandLine:

    def test_monitor_overrides(self):
        """monitor flags override stream settings."""
        args = build_parser().parse_args(
            ["--log-level", "DEBUG", "monitor", "--host", "10.1.1.1", "--port", "7000"]
        )
        settings = apply_args(Settings(), args)
        assert settings.stream.host == "10.1.1.1"
        assert settings.stream.port == 7000
        assert settings.stream.reconnect_delay_ms == 1000
        assert settings.logging.level == "DEBUG"

    def test_simulate_overrides(self):
        """simulate flags override simulator settings."""
        args = build_parser().parse_args(["simulate", "--points", "720", "--rate", "5"])
        settings = apply_args(Settings(), args)
        assert settings.simulator.points_per_frame == 720
        assert settings.simulator.rate_hz == 5.0

    def test_command_required(self):
        """A subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_run_monitor_against_simulator(self, run_async):
        """run_monitor reports frames seen from the simulator."""
        async def scenario():
            async with LidarSimulator(port=0, points_per_frame=10, rate_hz=50.0) as sim:
                settings = Settings.model_validate(
                    {"stream": {"port": sim.port}, "monitor": {"report_interval_seconds": 0.1}}
                )
                return await run_monitor(settings, duration=0.5)

        summary = run_async(scenario())
        assert summary["frames_seen"] > 0
        assert summary["final_state"] == "DISCONNECTED"
        assert summary["connect_attempts"] == 1

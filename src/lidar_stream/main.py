"""
lidar-stream Command Line
=========================

Entry point for the `lidar-stream` console script.

Commands:
    monitor   Connect to a sender and log frame rate / delay statistics
    simulate  Run a synthetic sender on a local port

Usage:
    lidar-stream monitor --host 192.168.1.50 --port 9999 --duration 60
    lidar-stream simulate --port 9999 --points 720 --rate 15
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import List, Optional

from lidar_stream import __version__
from lidar_stream.config import Settings, load_config, setup_logging
from lidar_stream.monitor import StreamMonitor
from lidar_stream.simulator import LidarSimulator
from lidar_stream.stream import LidarStreamClient


logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT/SIGTERM where the loop supports it."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            pass


async def run_monitor(settings: Settings, duration: Optional[float]) -> dict:
    """
    Stream from the configured sender until stopped or duration elapses.

    Returns:
        Final summary dict
    """
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    client = LidarStreamClient.from_config(settings.stream)
    monitor = StreamMonitor(
        client.subscribe(),
        report_interval=settings.monitor.report_interval_seconds,
    )

    logger.info("=" * 60)
    logger.info(f"Monitoring LiDAR stream at {client.address}")
    logger.info(f"Reconnect delay: {client.reconnect_delay_ms} ms")
    logger.info(f"Duration: {'unlimited' if duration is None else f'{duration:.0f}s'}")
    logger.info("=" * 60)

    start_time = time.time()
    async with client:
        monitor_task = asyncio.create_task(monitor.run(stop_event))
        try:
            if duration is None:
                await stop_event.wait()
            else:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=duration)
                except asyncio.TimeoutError:
                    logger.info(f"Duration ({duration:.0f}s) reached")
        finally:
            stop_event.set()
            snapshot = await monitor_task

    return {
        "elapsed_seconds": round(time.time() - start_time, 1),
        "frames_seen": snapshot.frames_seen,
        "fps": round(snapshot.fps, 2),
        "last_delay_ms": snapshot.last_delay_ms,
        "final_state": client.state.value,
        **client.metrics.to_dict(),
        "buffer": client.frames.metrics(),
    }


async def run_simulator(settings: Settings) -> None:
    """Serve synthetic scans until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    sim = settings.simulator
    async with LidarSimulator(
        host=sim.host,
        port=sim.port,
        points_per_frame=sim.points_per_frame,
        rate_hz=sim.rate_hz,
    ) as simulator:
        await stop_event.wait()
        logger.info(f"Frames sent: {simulator.frames_sent}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lidar-stream",
        description="Resilient TCP client for streaming LiDAR scans",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--log-level", help="Override log level (DEBUG, INFO, ...)")

    commands = parser.add_subparsers(dest="command", required=True)

    monitor = commands.add_parser("monitor", help="Consume a stream and report statistics")
    monitor.add_argument("--host", help="Sender host")
    monitor.add_argument("--port", type=int, help="Sender port")
    monitor.add_argument("--reconnect-delay-ms", type=int, help="Delay between reconnects")
    monitor.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Seconds to run (default: until interrupted)",
    )
    monitor.add_argument(
        "--report-interval",
        type=float,
        help="Seconds between progress reports",
    )

    simulate = commands.add_parser("simulate", help="Run a synthetic LiDAR sender")
    simulate.add_argument("--host", help="Bind host")
    simulate.add_argument("--port", type=int, help="Bind port")
    simulate.add_argument("--points", type=int, help="Points per frame")
    simulate.add_argument("--rate", type=float, help="Frames per second")

    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command line overrides applied."""
    data = settings.model_dump()

    if args.log_level:
        data["logging"]["level"] = args.log_level

    if args.command == "monitor":
        overrides = {
            "host": args.host,
            "port": args.port,
            "reconnect_delay_ms": args.reconnect_delay_ms,
        }
        data["stream"].update({k: v for k, v in overrides.items() if v is not None})
        if args.report_interval is not None:
            data["monitor"]["report_interval_seconds"] = args.report_interval
    elif args.command == "simulate":
        overrides = {
            "host": args.host,
            "port": args.port,
            "points_per_frame": args.points,
            "rate_hz": args.rate,
        }
        data["simulator"].update({k: v for k, v in overrides.items() if v is not None})

    return Settings.model_validate(data)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = apply_args(load_config(args.config), args)
    setup_logging(settings)

    if args.command == "simulate":
        asyncio.run(run_simulator(settings))
        return 0

    summary = asyncio.run(run_monitor(settings, args.duration))

    logger.info("=" * 60)
    logger.info("Final Summary")
    logger.info("=" * 60)
    for key, value in summary.items():
        logger.info(f"  {key}: {value}")

    return 0 if summary["frames_seen"] > 0 else 1


if __name__ == "__main__":
    sys.exit(main())

"""
lidar-stream Configuration
==========================

This module handles configuration loading for the LiDAR stream client.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    LIDAR_HOST               -> stream.host
    LIDAR_PORT               -> stream.port
    LIDAR_RECONNECT_DELAY_MS -> stream.reconnect_delay_ms
    LIDAR_CONNECT_TIMEOUT_MS -> stream.connect_timeout_ms
    LIDAR_READ_TIMEOUT_MS    -> stream.read_timeout_ms
    LIDAR_BUFFER_CAPACITY    -> stream.buffer_capacity
    LIDAR_MAX_POINTS         -> stream.max_points
    LIDAR_LOG_LEVEL          -> logging.level

There is no module-level settings instance. Load a Settings value once
and pass the relevant section to whatever needs it; a changed endpoint
means building a new client and restarting it.

Example:
    from lidar_stream.config import load_config
    from lidar_stream.stream import LidarStreamClient

    settings = load_config()
    client = LidarStreamClient.from_config(settings.stream)
"""

import os
import logging
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class StreamConfig(BaseModel):
    """LiDAR sender connection configuration."""

    host: str = Field(
        default="127.0.0.1",
        min_length=1,
        description="Hostname or IP of the LiDAR sender",
    )
    port: int = Field(default=9999, ge=1, le=65535, description="Sender TCP port")
    reconnect_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Delay in milliseconds between reconnection attempts",
    )
    connect_timeout_ms: int = Field(
        default=1500,
        gt=0,
        description="Socket connect timeout in milliseconds",
    )
    read_timeout_ms: int = Field(
        default=2500,
        gt=0,
        description="Timeout in milliseconds for each header/payload read",
    )
    buffer_capacity: int = Field(
        default=32,
        ge=1,
        description="Frames buffered per subscriber before dropping oldest",
    )
    max_points: int = Field(
        default=0,
        ge=0,
        description="Maximum points accepted per frame (0 = unlimited)",
    )


class MonitorConfig(BaseModel):
    """Stream monitor configuration."""

    report_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between progress reports",
    )


class SimulatorConfig(BaseModel):
    """Synthetic LiDAR sender configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=9999, ge=0, le=65535, description="Bind port (0 = any)")
    points_per_frame: int = Field(
        default=360,
        ge=0,
        description="Samples per synthetic scan",
    )
    rate_hz: float = Field(default=10.0, gt=0, description="Scans per second")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for lidar-stream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    stream: StreamConfig = Field(default_factory=StreamConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If a value violates its constraints
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path.home() / ".config" / "lidar-stream" / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data: dict = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data, os.environ if environ is None else environ)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict, environ: Mapping[str, str]) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    stream_vars = {
        "LIDAR_PORT": "port",
        "LIDAR_RECONNECT_DELAY_MS": "reconnect_delay_ms",
        "LIDAR_CONNECT_TIMEOUT_MS": "connect_timeout_ms",
        "LIDAR_READ_TIMEOUT_MS": "read_timeout_ms",
        "LIDAR_BUFFER_CAPACITY": "buffer_capacity",
        "LIDAR_MAX_POINTS": "max_points",
    }
    if env_host := environ.get("LIDAR_HOST"):
        config_data.setdefault("stream", {})["host"] = env_host
    for env_name, field in stream_vars.items():
        if env_value := environ.get(env_name):
            config_data.setdefault("stream", {})[field] = int(env_value)

    # Logging settings
    if env_log := environ.get("LIDAR_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

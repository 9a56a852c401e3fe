"""
Configuration Tests
===================
"""

import pytest
from pydantic import ValidationError

from lidar_stream.config import Settings, StreamConfig, load_config


@pytest.fixture
def missing_path(tmp_path):
    return str(tmp_path / "missing.yaml")


class TestDefaults:

    def test_stream_defaults(self, missing_path):
        """Defaults apply without a file or env."""
        settings = load_config(missing_path, environ={})
        assert settings.stream.host == "127.0.0.1"
        assert settings.stream.port == 9999
        assert settings.stream.reconnect_delay_ms == 1000
        assert settings.stream.connect_timeout_ms == 1500
        assert settings.stream.read_timeout_ms == 2500
        assert settings.stream.buffer_capacity == 32
        assert settings.stream.max_points == 0

    def test_other_sections(self):
        """Non-stream sections have defaults."""
        settings = Settings()
        assert settings.logging.level == "INFO"
        assert settings.monitor.report_interval_seconds == 10.0
        assert settings.simulator.points_per_frame == 360


class TestLoading:

    def test_yaml_file(self, tmp_path):
        """YAML values override defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "stream:\n"
            "  host: lidar.local\n"
            "  port: 4001\n"
            "  reconnect_delay_ms: 250\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        settings = load_config(str(path), environ={})
        assert settings.stream.host == "lidar.local"
        assert settings.stream.port == 4001
        assert settings.stream.reconnect_delay_ms == 250
        assert settings.stream.read_timeout_ms == 2500
        assert settings.logging.level == "DEBUG"

    def test_empty_yaml_file(self, tmp_path):
        """Empty file gives default settings."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path), environ={}) == Settings()

    def test_env_overrides_yaml(self, tmp_path):
        """Environment wins over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("stream:\n  host: from-file\n  port: 4001\n")
        env = {
            "LIDAR_HOST": "from-env",
            "LIDAR_RECONNECT_DELAY_MS": "0",
            "LIDAR_BUFFER_CAPACITY": "8",
            "LIDAR_LOG_LEVEL": "WARNING",
        }
        settings = load_config(str(path), environ=env)
        assert settings.stream.host == "from-env"
        assert settings.stream.port == 4001
        assert settings.stream.reconnect_delay_ms == 0
        assert settings.stream.buffer_capacity == 8
        assert settings.logging.level == "WARNING"

    def test_env_port(self, missing_path):
        """LIDAR_PORT sets the port."""
        settings = load_config(missing_path, environ={"LIDAR_PORT": "5555"})
        assert settings.stream.port == 5555


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port": 0},
            {"port": 65536},
            {"reconnect_delay_ms": -1},
            {"connect_timeout_ms": 0},
            {"buffer_capacity": 0},
            {"host": ""},
        ],
    )
    def test_rejects_invalid_stream_values(self, overrides):
        """Out-of-range stream values fail validation."""
        with pytest.raises(ValidationError):
            StreamConfig(**overrides)

    def test_invalid_env_value(self, missing_path):
        """Invalid env values fail validation."""
        with pytest.raises(ValidationError):
            load_config(missing_path, environ={"LIDAR_PORT": "70000"})

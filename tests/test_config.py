"""Tests for CLI parsing, environment overrides and component wiring."""

from __future__ import annotations

import os
import tempfile

import pytest

from marsguard.attestation.registry import FilesystemRegistry, InMemoryRegistry
from marsguard.base.config import ServiceSettings, build_parser, check_config, config, resolve_settings
from marsguard.entrypoints.server import build_components


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


class TestConfig:

    def test_defaults(self):
        settings = config([], environ={})
        assert settings.server_port == 8300
        assert settings.registry_backend == "filesystem"
        assert settings.telemetry_poll_interval == 60.0
        assert settings.telemetry_stale_after == 30.0
        assert settings.retry_max_attempts == 3
        assert settings.dont_save_events is False

    def test_cli_values(self):
        settings = config(
            ["--server.port", "9000", "--registry.backend", "memory", "--neuron.dont_save_events"],
            environ={},
        )
        assert settings.server_port == 9000
        assert settings.registry_backend == "memory"
        assert settings.dont_save_events is True

    def test_env_overrides_cli(self):
        args = build_parser().parse_args(["--server.port", "9000", "--telemetry.url", "http://cli"])
        settings = resolve_settings(args, environ={
            "MARSGUARD_SERVER__PORT": "9100",
            "MARSGUARD_TELEMETRY__URL": "http://env",
            "MARSGUARD_RETRY__MAX_ATTEMPTS": "5",
            "MARSGUARD_NEURON__DONT_SAVE_EVENTS": "true",
        })
        assert settings.server_port == 9100
        assert settings.telemetry_url == "http://env"
        assert settings.retry_max_attempts == 5
        assert settings.dont_save_events is True

    def test_empty_env_value_ignored(self):
        settings = config(["--server.port", "9000"], environ={"MARSGUARD_SERVER__PORT": ""})
        assert settings.server_port == 9000

    def test_invalid_backend_rejected(self):
        with pytest.raises(ValueError):
            config([], environ={"MARSGUARD_REGISTRY__BACKEND": "postgres"})

    def test_unparseable_env_value_names_variable(self):
        with pytest.raises(ValueError, match="MARSGUARD_SERVER__PORT='abc'"):
            config([], environ={"MARSGUARD_SERVER__PORT": "abc"})
        with pytest.raises(ValueError, match="MARSGUARD_TELEMETRY__POLL_INTERVAL"):
            config([], environ={"MARSGUARD_TELEMETRY__POLL_INTERVAL": "often"})

    def test_retry_policy(self):
        policy = ServiceSettings(retry_max_attempts=4, retry_backoff_base=1.0, retry_max_backoff=2.0).retry_policy()
        assert policy.max_attempts == 4
        assert policy.delay(3) == 2.0

    def test_check_config_creates_log_dir(self, tmp_dir):
        settings = ServiceSettings(logging_dir=tmp_dir, dont_save_events=True)
        full_path = check_config(settings)
        assert os.path.isdir(full_path)
        assert full_path.startswith(tmp_dir)


class TestBuildComponents:

    def test_memory_backend(self):
        server, feed = build_components(ServiceSettings(registry_backend="memory", server_port=0))
        assert isinstance(server.registry, InMemoryRegistry)
        assert server.feed is feed
        assert server.channel.board is server.board

    def test_filesystem_backend_with_key(self, tmp_dir):
        key_hex = "11" * 32
        settings = ServiceSettings(
            registry_data_dir=tmp_dir,
            board_path=os.path.join(tmp_dir, "board.json"),
            channel_key_hex=key_hex,
            telemetry_url="http://telemetry.test/validators",
        )
        server, feed = build_components(settings)
        assert isinstance(server.registry, FilesystemRegistry)
        assert feed.url == "http://telemetry.test/validators"
        assert server.board.path is not None

"""
Tests for the JSON config loader and engine settings.
"""
import json

import pytest

from vaultcast.lib import config
from vaultcast.models import EngineSettings


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    def write(data):
        path = tmp_path / "config.json"
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        monkeypatch.setenv("VAULTCAST_CONFIG", str(path))
        config.reload_config()
        return path

    yield write
    monkeypatch.delenv("VAULTCAST_CONFIG", raising=False)
    config.reload_config()


class TestConfig:
    def test_env_override_wins(self, config_file):
        config_file({"renderer": {"bridge_url": "http://bridge:9000"}, "sync": {"poll_interval": 2}})
        assert config.cfg("renderer", "bridge_url") == "http://bridge:9000"
        assert config.cfg("sync", "poll_interval") == 2

    def test_defaults(self, config_file):
        config_file({"server": {"port": 9999}})
        assert config.cfg("server", "host", default="0.0.0.0") == "0.0.0.0"
        assert config.cfg("missing", default={}) == {}
        assert config.cfg("server") == {"port": 9999}

    def test_non_dict_section(self, config_file):
        config_file({"device": "VaultCast"})
        assert config.cfg("device") == "VaultCast"
        assert config.cfg("device", "name", default="x") == "x"

    def test_invalid_json_falls_through(self, config_file, caplog):
        config_file("{broken")
        assert "Invalid JSON" in caplog.text
        # The repo default config is the next file in line
        assert config.cfg("server", "port") == 8790

    def test_suspicious_values_warned(self, config_file, caplog):
        config_file({"renderer": {"bridge_url": "http://b"}, "timeouts": {"command": 0}})
        assert "timeouts.command must be a positive number" in caplog.text

    def test_engine_settings_from_config(self, config_file):
        config_file({
            "discovery": {"duration": 3},
            "timeouts": {"command": 2, "connect": 4},
            "sync": {"seek_tolerance": 0.5},
        })
        settings = EngineSettings.from_config()
        assert settings.discovery_duration == 3.0
        assert settings.command_timeout == 2.0
        assert settings.connect_timeout == 4.0
        assert settings.seek_tolerance == 0.5
        assert settings.seek_guard_timeout == 5.0

# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/test_config.py

"""Tests for loading settings from TOML."""

import pytest

from btrfs_assistant.config import (
    CONFIG_ENV,
    Settings,
    default_config_path,
    load_settings,
    parse_settings,
)
from btrfs_assistant.errors import ConfigurationError


class TestParseSettings:

    def test_defaults(self):
        settings = parse_settings({})
        assert settings == Settings()
        assert settings.command_timeout == 60
        assert settings.snapper_bin == "snapper"

    def test_values(self):
        settings = parse_settings({
            "snapper_bin": "/usr/local/bin/snapper",
            "command_timeout": 120,
            "log_level": "debug",
        })
        assert settings.snapper_bin == "/usr/local/bin/snapper"
        assert settings.command_timeout == 120
        assert settings.log_level == "DEBUG"

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="snaper_bin"):
            parse_settings({"snaper_bin": "snapper"})

    @pytest.mark.parametrize("timeout", [0, -5, "60", True, 1.5])
    def test_bad_timeout(self, timeout):
        with pytest.raises(ConfigurationError):
            parse_settings({"command_timeout": timeout})

    def test_bad_log_level(self):
        with pytest.raises(ConfigurationError):
            parse_settings({"log_level": "LOUD"})

    def test_empty_snapper_bin(self):
        with pytest.raises(ConfigurationError):
            parse_settings({"snapper_bin": ""})


class TestLoadSettings:

    def test_missing_file(self, tmp_path):
        assert load_settings(tmp_path / "nope.toml") == Settings()

    def test_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('command_timeout = 30\nlog_level = "WARNING"\n')
        settings = load_settings(path)
        assert settings.command_timeout == 30
        assert settings.log_level == "WARNING"

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("command_timeout = \n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_settings(path)

    def test_environment_override(self, tmp_path, monkeypatch):
        path = tmp_path / "env.toml"
        path.write_text('snapper_bin = "/opt/snapper"\n')
        monkeypatch.setenv(CONFIG_ENV, str(path))
        assert default_config_path() == path
        assert load_settings().snapper_bin == "/opt/snapper"

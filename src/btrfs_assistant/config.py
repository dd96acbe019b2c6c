# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/config.py

"""Settings for btrfs-assistant, read from a TOML file.

Example ~/.config/btrfs-assistant/config.toml:

    snapper_bin = "/usr/bin/snapper"
    command_timeout = 60
    log_level = "INFO"
"""

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

CONFIG_ENV = "BTRFS_ASSISTANT_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".config/btrfs-assistant/config.toml"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class Settings:
    """Paths to external tools and runtime knobs."""
    snapper_bin: str = "snapper"
    command_timeout: int = 60
    log_level: str = "INFO"


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH))


def parse_settings(data: dict[str, Any]) -> Settings:
    """Validate a parsed TOML table and build Settings from it."""
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {}
    if "snapper_bin" in data:
        if not isinstance(data["snapper_bin"], str) or not data["snapper_bin"]:
            raise ConfigurationError("snapper_bin must be a non-empty string")
        values["snapper_bin"] = data["snapper_bin"]
    if "command_timeout" in data:
        timeout = data["command_timeout"]
        # bool is an int subclass
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
            raise ConfigurationError("command_timeout must be a positive integer")
        values["command_timeout"] = timeout
    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")
        values["log_level"] = level
    return Settings(**values)


def load_settings(path: Path | None = None) -> Settings:
    """Load settings; a missing file gives the defaults."""
    path = path or default_config_path()
    if not path.exists():
        return Settings()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e
    return parse_settings(data)

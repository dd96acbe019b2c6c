# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/conftest.py
"""Pytest configuration for btrfs-assistant tests."""

from datetime import datetime

import pytest

from btrfs_assistant.inventory import BtrfsInventory
from tests.fixtures.fake_volume import FakeVolume


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-btrfs-tests",
        action="store_true",
        default=False,
        help="Run tests that require a btrfs filesystem and root access",
    )


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "btrfs_required: mark test as requiring btrfs filesystem and root",
    )


def pytest_collection_modifyitems(config, items):
    """Skip btrfs tests unless --run-btrfs-tests is passed."""
    if not config.getoption("--run-btrfs-tests"):
        skip_btrfs = pytest.mark.skip(
            reason="need --run-btrfs-tests option to run"
        )
        for item in items:
            if "btrfs_required" in item.keywords:
                item.add_marker(skip_btrfs)


FIXED_NOW = datetime(2026, 10, 19, 14, 25, 1, 123456)


@pytest.fixture
def volume(tmp_path):
    """A populated fake volume whose top level lives under tmp_path."""
    return FakeVolume(tmp_path / "top").populate()


@pytest.fixture
def inventory(volume):
    inv = BtrfsInventory(volume.runner)
    inv.load()
    return inv

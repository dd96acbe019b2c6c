# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# Copyright (C) 2026 HRDAG https://hrdag.org
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License along
# with this program; if not, see <https://www.gnu.org/licenses/>.
#
# ------
# btrfs-assistant/src/btrfs_assistant/__init__.py

"""Btrfs filesystem inventory and snapper snapshot restore."""

from .boot import detect_snapshot_boot
from .errors import (
    BackupRenameError,
    BtrfsAssistantError,
    ChildReattachError,
    ConfigRefusedError,
    ExternalSnapshotError,
    InvalidSnapshotError,
    MountFailureError,
    NotFoundError,
    PromotionVerificationError,
    RollbackError,
)
from .inventory import BtrfsInventory, SubvolumeRepository
from .restore import SnapshotRestorer
from .runner import CommandRunner, run_cmd
from .snapper import SnapperReader, read_snapshot_descriptor
from .types import (
    BootContext,
    Filesystem,
    RestoreResult,
    SnapperConfig,
    SnapperSubvolume,
    SnapshotRecord,
)

__version__ = "0.1.0"

__all__ = [
    "BtrfsInventory",
    "SubvolumeRepository",
    "SnapperReader",
    "SnapshotRestorer",
    "CommandRunner",
    "run_cmd",
    "detect_snapshot_boot",
    "read_snapshot_descriptor",
    "BootContext",
    "Filesystem",
    "RestoreResult",
    "SnapperConfig",
    "SnapperSubvolume",
    "SnapshotRecord",
    "BtrfsAssistantError",
    "NotFoundError",
    "InvalidSnapshotError",
    "ExternalSnapshotError",
    "MountFailureError",
    "BackupRenameError",
    "PromotionVerificationError",
    "RollbackError",
    "ChildReattachError",
    "ConfigRefusedError",
]

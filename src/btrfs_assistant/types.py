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
# btrfs-assistant/src/btrfs_assistant/types.py

"""Type definitions for btrfs filesystems, snapper snapshots and restores."""

from dataclasses import dataclass, field
from typing import Literal

from .errors import ChildReattachError


RestoreState = Literal[
    "validating",
    "evacuated",
    "promoted",
    "reattaching",
    "completed",
    "partially_completed",
    "rolled_back",
]


@dataclass(frozen=True)
class CommandResult:
    """Exit status and trimmed output of an external command."""
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _percent(used: int, size: int) -> float:
    return used / size * 100 if size else 0.0


@dataclass(frozen=True)
class Filesystem:
    """Usage and subvolumes of one mounted btrfs filesystem."""
    uuid: str
    mountpoint: str
    total_size: int = 0
    allocated_size: int = 0
    used_size: int = 0
    free_size: int = 0
    data_size: int = 0
    data_used: int = 0
    meta_size: int = 0
    meta_used: int = 0
    sys_size: int = 0
    sys_used: int = 0
    subvolumes: dict[str, str] = field(default_factory=dict)

    @property
    def data_percent(self) -> float:
        return _percent(self.data_used, self.data_size)

    @property
    def meta_percent(self) -> float:
        return _percent(self.meta_used, self.meta_size)

    @property
    def sys_percent(self) -> float:
        return _percent(self.sys_used, self.sys_size)

    @property
    def allocated_ratio(self) -> float:
        return self.allocated_size / self.total_size if self.total_size else 0.0


@dataclass(frozen=True)
class SubvolumeEntry:
    """One row of `btrfs subvolume list -p`."""
    subvol_id: str
    parent_id: str
    path: str


@dataclass(frozen=True)
class SnapperConfig:
    """A snapper config and the subvolume it snapshots."""
    name: str
    subvolume: str


@dataclass(frozen=True)
class SnapshotRecord:
    """A numbered snapper snapshot. Number 0 means absent."""
    number: int
    timestamp: str = ""
    description: str = ""


@dataclass(frozen=True)
class SnapperSubvolume:
    """An on-disk snapper snapshot found while in restore mode."""
    uuid: str
    subvol_id: str
    path: str
    timestamp: str = ""
    description: str = ""


@dataclass(frozen=True)
class BootContext:
    """Whether the running system was booted from a snapshot subvolume."""
    booted_from_snapshot: bool
    uuid: str = ""
    subvolume: str = ""

    @classmethod
    def normal(cls) -> "BootContext":
        return cls(booted_from_snapshot=False)


@dataclass
class RestoreTransaction:
    """Working state of a single restore; discarded when it ends."""
    uuid: str
    snapshot: str
    target: str = ""
    target_id: str = ""
    mountpoint: str = ""
    backup_name: str = ""
    children: list[str] = field(default_factory=list)
    state: RestoreState = "validating"


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a restore that got past promotion."""
    target: str
    backup_name: str
    snapshot: str
    state: RestoreState
    reboot_recommended: bool = False
    child_errors: tuple[ChildReattachError, ...] = ()

    @property
    def partial(self) -> bool:
        return self.state == "partially_completed"

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
# btrfs-assistant/src/btrfs_assistant/snapper.py

"""Snapper configs, snapshot listings and info.xml metadata."""

import logging
import shlex
import shutil
from pathlib import Path
from typing import Final, Iterable

from .errors import ConfigRefusedError, MountFailureError
from .inventory import BtrfsInventory, is_snapper_subvolume
from .parsers import (
    SNAPSHOTS_DIR,
    descriptor_path,
    parse_snapper_configs,
    parse_snapper_get_config,
    parse_snapper_list,
    parse_snapshot_descriptor,
    split_snapshot_path,
)
from .runner import CommandRunner
from .types import BootContext, SnapperConfig, SnapperSubvolume, SnapshotRecord

logger = logging.getLogger(__name__)

ROOT_CONFIG: Final = "root"
DESCRIPTOR_NAME: Final = "info.xml"

# Settings shown and edited for a config
TIMELINE_KEYS: Final = (
    "SUBVOLUME",
    "TIMELINE_CREATE",
    "TIMELINE_LIMIT_HOURLY",
    "TIMELINE_LIMIT_DAILY",
    "TIMELINE_LIMIT_WEEKLY",
    "TIMELINE_LIMIT_MONTHLY",
    "TIMELINE_LIMIT_YEARLY",
    "NUMBER_LIMIT",
)


def newest_first(records: Iterable[SnapshotRecord]) -> list[SnapshotRecord]:
    return sorted(records, key=lambda r: r.number, reverse=True)


def read_snapshot_descriptor(path: Path | str) -> SnapshotRecord | None:
    """Read a snapper info.xml; None when missing or without a number."""
    try:
        text = Path(path).read_text(errors="replace")
    except OSError as e:
        logger.debug("cannot read %s: %s", path, e)
        return None
    record = parse_snapshot_descriptor(text)
    if record.number == 0:
        return None
    return record


def walk_descriptors(snapshots_dir: Path) -> list[SnapshotRecord]:
    """Read every info.xml at most two levels below snapshots_dir."""
    files = sorted(snapshots_dir.glob(DESCRIPTOR_NAME))
    files += sorted(snapshots_dir.glob(f"*/{DESCRIPTOR_NAME}"))
    records = [r for r in map(read_snapshot_descriptor, files) if r is not None]
    return sorted(records, key=lambda r: r.number)


class SnapperReader:
    """Reads and manages snapper configs and their snapshots."""

    def __init__(self, runner: CommandRunner | None = None,
                 boot_context: BootContext | None = None,
                 snapper_bin: str = "snapper"):
        self.run = runner or CommandRunner()
        self.boot = boot_context or BootContext.normal()
        self.snapper_bin = snapper_bin

    def available(self) -> bool:
        return shutil.which(self.snapper_bin) is not None

    def _snapper(self, *args: str) -> str:
        return shlex.join([self.snapper_bin, *args])

    def list_configs(self) -> list[SnapperConfig]:
        return parse_snapper_configs(self.run(self._snapper("list-configs")).output)

    def list_snapshots(self, config: str) -> list[SnapshotRecord]:
        output = self.run(self._snapper(
            "-c", config, "list", "--columns", "number,date,description")).output
        return parse_snapper_list(output)

    def load(self, inventory: BtrfsInventory) -> dict[str, list[SnapshotRecord]]:
        """Return the snapshots of every config, keyed by config name.

        When booted from a snapshot the root config is read from the
        info.xml files on disk, since snapper itself is unreliable then.
        """
        snapshots: dict[str, list[SnapshotRecord]] = {}
        for config in self.list_configs():
            if config.name == ROOT_CONFIG and self.boot.booted_from_snapshot:
                snapshots[config.name] = self._root_snapshots_from_disk(inventory)
            else:
                snapshots[config.name] = self.list_snapshots(config.name)
        return snapshots

    def _root_snapshots_from_disk(self, inventory: BtrfsInventory) -> list[SnapshotRecord]:
        prefix, _ = split_snapshot_path(self.boot.subvolume)
        mountpoint = inventory.mount_root(self.boot.uuid)
        if not mountpoint:
            raise MountFailureError(
                f"Cannot mount the top level of {self.boot.uuid} to read root snapshots")
        snapshots_dir = Path(mountpoint) / prefix / SNAPSHOTS_DIR
        logger.info("reading root snapshots from %s", snapshots_dir)
        return walk_descriptors(snapshots_dir)

    def load_restore_mode(self, inventory: BtrfsInventory) -> dict[str, list[SnapperSubvolume]]:
        """Find every snapper snapshot subvolume on every filesystem.

        Snapshots are grouped by the subvolume they were taken of, inferred
        from the path in front of the .snapshots directory.
        """
        groups: dict[str, list[SnapperSubvolume]] = {}
        root_subvolume = None

        for uuid in inventory.list_filesystems():
            mountpoint = inventory.find_mountpoint(uuid)
            if not mountpoint:
                continue
            paths = inventory.load_subvolumes(uuid, mountpoint)
            if not paths:
                continue

            top = inventory.mount_root(uuid)
            if not top:
                logger.warning("skipping %s: cannot mount its top level", uuid)
                continue

            for subvol_id, path in sorted(paths.items(), key=lambda kv: int(kv[0])):
                if not is_snapper_subvolume(path):
                    continue
                record = read_snapshot_descriptor(Path(top) / descriptor_path(path))
                if record is None:
                    continue

                prefix, _ = split_snapshot_path(path)
                if not prefix:
                    if root_subvolume is None:
                        root_subvolume = inventory.resolve_root_subvolume()
                    prefix = root_subvolume or ROOT_CONFIG

                groups.setdefault(prefix, []).append(SnapperSubvolume(
                    uuid=uuid,
                    subvol_id=subvol_id,
                    path=path,
                    timestamp=record.timestamp,
                    description=record.description,
                ))
        return groups

    def create_snapshot(self, config: str, description: str = "Manual Snapshot") -> None:
        self.run.check(self._snapper("-c", config, "create", "-d", description))
        logger.info("created snapshot of %s: %s", config, description)

    def delete_snapshots(self, config: str, numbers: Iterable[int]) -> None:
        numbers = sorted({int(n) for n in numbers})
        if not numbers:
            return
        self.run.check(self._snapper("-c", config, "delete", *map(str, numbers)))
        logger.info("deleted snapshot(s) %s of %s", numbers, config)

    def create_config(self, name: str, subvolume: str) -> str:
        """Create a config, refusing empty or taken names."""
        name = "".join(name.split())
        if not name:
            raise ConfigRefusedError("Please enter a valid config name")
        if name in {c.name for c in self.list_configs()}:
            raise ConfigRefusedError(f"Config name {name} is already in use")
        self.run.check(self._snapper("-c", name, "create-config", subvolume))
        logger.info("created snapper config %s for %s", name, subvolume)
        return name

    def delete_config(self, name: str) -> None:
        if name == ROOT_CONFIG:
            raise ConfigRefusedError("The root config cannot be deleted")
        self.run.check(self._snapper("-c", name, "delete-config"))
        logger.info("deleted snapper config %s", name)

    def get_config(self, name: str) -> dict[str, str]:
        return parse_snapper_get_config(self.run.check(self._snapper("-c", name, "get-config")))

    def set_config(self, name: str, values: dict[str, str]) -> None:
        if not values:
            return
        pairs = [f"{key}={value}" for key, value in values.items()]
        self.run.check(self._snapper("-c", name, "set-config", *pairs))
        logger.info("updated snapper config %s: %s", name, ", ".join(pairs))

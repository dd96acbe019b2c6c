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
# btrfs-assistant/src/btrfs_assistant/inventory.py

"""Discovery of btrfs filesystems, their usage and their subvolumes."""

import logging
import os
import shlex
import tempfile
from dataclasses import replace
from typing import Iterable

from .errors import (
    ExternalSnapshotError,
    InvalidSnapshotError,
    MalformedLineError,
    MountFailureError,
    NotFoundError,
    SubvolumeBusyError,
)
from .parsers import (
    SNAPSHOTS_DIR,
    parse_filesystem_show,
    parse_findmnt_pair,
    parse_root_mount,
    parse_subvolume_list,
    parse_usage,
    unescape_findmnt,
)
from .runner import CommandRunner
from .types import Filesystem, SubvolumeEntry

logger = logging.getLogger(__name__)

TOP_LEVEL_ID = "5"
TIMESHIFT_MARKER = "timeshift-btrfs"


def is_snapper_subvolume(path: str) -> bool:
    """True for a snapper snapshot, false for the .snapshots container."""
    return SNAPSHOTS_DIR in path and not path.rstrip("/").endswith(SNAPSHOTS_DIR)


def is_timeshift_subvolume(path: str) -> bool:
    """True for subvolumes created by Timeshift."""
    return TIMESHIFT_MARKER in path


def human_size(size: float) -> str:
    """Format a byte count with binary units."""
    units = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB"]
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    if i == 0:
        return f"{int(size)} B"
    return f"{size:.2f} {units[i]}"


def needs_balance(fs: Filesystem) -> bool:
    """Data chunks less than 85% full are worth balancing."""
    return fs.data_size > 0 and fs.data_percent < 85


def space_advice(fs: Filesystem) -> str:
    ratio = fs.allocated_ratio
    if ratio < 0.70:
        return "You have lots of free space"
    if ratio > 0.95:
        return "Situation critical! Time to delete some data or add more disk"
    return "Your disk space is well utilized"


class SubvolumeRepository:
    """Subvolume ids, paths and parents of a single filesystem."""

    def __init__(self, uuid: str, entries: Iterable[SubvolumeEntry] = ()):
        self.uuid = uuid
        self._entries: dict[str, SubvolumeEntry] = {}
        self._ids_by_path: dict[str, str] = {}
        for entry in entries:
            self._entries[entry.subvol_id] = entry
            self._ids_by_path[entry.path] = entry.subvol_id

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._ids_by_path

    def contains_id(self, subvol_id: str) -> bool:
        return subvol_id in self._entries

    def id_for(self, path: str) -> str:
        try:
            return self._ids_by_path[path]
        except KeyError:
            raise NotFoundError(
                f"Subvolume {path} not found on filesystem {self.uuid}"
            ) from None

    def path_for(self, subvol_id: str) -> str:
        try:
            return self._entries[subvol_id].path
        except KeyError:
            raise NotFoundError(
                f"Subvolume id {subvol_id} not found on filesystem {self.uuid}"
            ) from None

    def children_of(self, subvol_id: str) -> list[str]:
        return sorted(e.path for e in self._entries.values()
                      if e.parent_id == subvol_id)

    def paths(self) -> dict[str, str]:
        """Return the id to path mapping."""
        return {sid: e.path for sid, e in self._entries.items()}


class BtrfsInventory:
    """Builds and holds the btrfs filesystem inventory."""

    def __init__(self, runner: CommandRunner | None = None):
        self.run = runner or CommandRunner()
        self._filesystems: dict[str, Filesystem] = {}
        self._repositories: dict[str, SubvolumeRepository] = {}
        self._mounted: dict[str, str] = {}

    @property
    def filesystems(self) -> dict[str, Filesystem]:
        return dict(self._filesystems)

    @property
    def temporary_mounts(self) -> dict[str, str]:
        """Top-level mounts created by this inventory, by uuid."""
        return dict(self._mounted)

    def get(self, uuid: str) -> Filesystem:
        try:
            return self._filesystems[uuid]
        except KeyError:
            raise NotFoundError(f"Filesystem {uuid} is not in the inventory") from None

    def repository(self, uuid: str) -> SubvolumeRepository:
        try:
            return self._repositories[uuid]
        except KeyError:
            raise NotFoundError(f"No subvolumes loaded for filesystem {uuid}") from None

    def list_filesystems(self) -> list[str]:
        return parse_filesystem_show(self.run("btrfs filesystem show -m").output)

    def find_mountpoint(self, uuid: str) -> str:
        """Return one mountpoint of the filesystem, or "" when unmounted."""
        output = self.run("findmnt --real -rno target,uuid").output
        for line in output.splitlines():
            try:
                target, fs_uuid = parse_findmnt_pair(line)
            except MalformedLineError:
                continue
            if fs_uuid == uuid:
                return unescape_findmnt(target)
        return ""

    def load_usage(self, uuid: str, mountpoint: str) -> Filesystem:
        output = self.run(f"btrfs filesystem usage -b {shlex.quote(mountpoint)}").output
        return Filesystem(uuid=uuid, mountpoint=mountpoint, **parse_usage(output))

    def load_subvolumes(self, uuid: str, mountpoint: str) -> dict[str, str]:
        """Refresh the subvolume repository of a filesystem."""
        output = self.run(f"btrfs subvolume list -p {shlex.quote(mountpoint)}").output
        repository = SubvolumeRepository(uuid, parse_subvolume_list(output))
        self._repositories[uuid] = repository
        if uuid in self._filesystems:
            self._filesystems[uuid] = replace(self._filesystems[uuid],
                                              subvolumes=repository.paths())
        return repository.paths()

    def load(self) -> dict[str, Filesystem]:
        """Rebuild the whole inventory, replacing the previous one."""
        filesystems: dict[str, Filesystem] = {}
        self._repositories = {}
        for uuid in self.list_filesystems():
            mountpoint = self.find_mountpoint(uuid)
            if not mountpoint:
                logger.info("skipping unmounted filesystem %s", uuid)
                continue
            fs = self.load_usage(uuid, mountpoint)
            filesystems[uuid] = replace(fs, subvolumes=self.load_subvolumes(uuid, mountpoint))
        self._filesystems = filesystems
        logger.debug("loaded %d btrfs filesystem(s)", len(filesystems))
        return dict(filesystems)

    def resolve_root_subvolume(self) -> str:
        """Return the subvolume mounted at /, or "" for the top level."""
        output = self.run("findmnt -no uuid,options /").output
        try:
            _, subvol = parse_root_mount(output)
        except MalformedLineError:
            return ""
        return subvol

    def mount_root(self, uuid: str) -> str:
        """Make the top-level subvolume (id 5) reachable and return its path.

        An existing mount is reused. Nothing is ever unmounted.
        """
        output = self.run(f"findmnt -nO subvolid={TOP_LEVEL_ID} -o uuid,target").output
        for line in output.splitlines():
            try:
                fs_uuid, target = parse_findmnt_pair(line)
            except MalformedLineError:
                continue
            if fs_uuid == uuid:
                return target

        try:
            mountpoint = tempfile.mkdtemp(prefix="btrfs-assistant-")
        except OSError as e:
            logger.error("cannot create mount directory for %s: %s", uuid, e)
            return ""

        result = self.run(
            f"mount -t btrfs -o subvolid={TOP_LEVEL_ID} UUID={uuid} {shlex.quote(mountpoint)}",
            include_stderr=True,
        )
        if not result.ok:
            logger.error("mounting %s at %s failed: %s", uuid, mountpoint, result.output)
            os.rmdir(mountpoint)
            return ""
        logger.info("mounted top level of %s at %s", uuid, mountpoint)
        self._mounted[uuid] = mountpoint
        return mountpoint

    def _mountpoint_for(self, uuid: str) -> str:
        if uuid in self._filesystems:
            return self._filesystems[uuid].mountpoint
        mountpoint = self.find_mountpoint(uuid)
        if not mountpoint:
            raise NotFoundError(f"Filesystem {uuid} is not mounted")
        return mountpoint

    def refresh(self, uuid: str) -> dict[str, str]:
        """Re-read the subvolumes of one filesystem."""
        return self.load_subvolumes(uuid, self._mountpoint_for(uuid))

    def find_children(self, subvol_id: str, uuid: str) -> list[str]:
        """Return the paths of the direct child subvolumes of subvol_id.

        The subvolume list is re-read so the answer reflects the disk now.
        """
        self.refresh(uuid)
        return self.repository(uuid).children_of(subvol_id)

    def is_mounted(self, uuid: str, subvol_id: str) -> bool:
        output = self.run(f"findmnt -nO subvolid={subvol_id} -o uuid").output
        return uuid in (line.strip() for line in output.splitlines())

    def delete_subvolume(self, uuid: str, path: str) -> None:
        """Delete a plain subvolume after checking it is safe to do so."""
        path = path.lstrip("/")
        subvol_id = self.repository(uuid).id_for(path)

        if is_timeshift_subvolume(path):
            raise ExternalSnapshotError(f"{path} is a Timeshift snapshot; use Timeshift to delete it")
        if is_snapper_subvolume(path):
            raise InvalidSnapshotError(f"{path} is a snapper snapshot; delete it with snapper")
        if self.is_mounted(uuid, subvol_id):
            raise SubvolumeBusyError(f"{path} is mounted; unmount it before deleting")

        mountpoint = self.mount_root(uuid)
        if not mountpoint:
            raise MountFailureError(f"Cannot mount the top level of filesystem {uuid}")
        target = os.path.join(mountpoint, path)
        self.run.check(f"btrfs subvolume delete {shlex.quote(target)}")
        logger.info("deleted subvolume %s (id %s) on %s", path, subvol_id, uuid)
        self.refresh(uuid)

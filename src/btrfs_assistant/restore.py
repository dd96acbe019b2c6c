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
# btrfs-assistant/src/btrfs_assistant/restore.py

"""Restore a snapper snapshot over the subvolume it was taken of.

The live target is renamed to a backup, a writable snapshot of the chosen
snapshot is created where the target was, and nested subvolumes are moved
from the backup into the new target. A crash between steps leaves either
the untouched target or the backup, which can be renamed back by hand.
"""

import logging
import os
import posixpath
import shlex
from dataclasses import replace
from datetime import datetime
from typing import Callable, Final

from .errors import (
    BackupRenameError,
    BtrfsAssistantError,
    ChildReattachError,
    CommandTimeoutError,
    ExternalSnapshotError,
    InvalidSnapshotError,
    MountFailureError,
    NotFoundError,
    PromotionVerificationError,
    RollbackError,
)
from .inventory import BtrfsInventory, is_snapper_subvolume, is_timeshift_subvolume
from .parsers import split_snapshot_path
from .runner import CommandRunner
from .types import BootContext, RestoreResult, RestoreState, RestoreTransaction

logger = logging.getLogger(__name__)

BACKUP_PREFIX: Final = "restore_backup_"


def backup_name_for(target: str, now: datetime) -> str:
    """Name the backup of target, e.g. restore_backup_@home_142501123."""
    name = posixpath.basename(target.rstrip("/"))
    return f"{BACKUP_PREFIX}{name}_{now:%H%M%S}{now.microsecond // 1000:03d}"


def relocate(path: str, target: str, backup: str) -> str:
    """Where path lives once target has been renamed to backup."""
    if path.startswith(target + "/"):
        return backup + path[len(target):]
    return path


def relative_to_target(child: str, target: str) -> str:
    if child.startswith(target + "/"):
        return child[len(target) + 1:]
    return child


class SnapshotRestorer:
    """Performs snapshot restores against one inventory."""

    def __init__(self, inventory: BtrfsInventory, runner: CommandRunner | None = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.inventory = inventory
        self.run = runner or inventory.run
        self.clock = clock

    def _transition(self, tx: RestoreTransaction, state: RestoreState) -> None:
        logger.info("restore %s -> %s: %s => %s", tx.snapshot, tx.target, tx.state, state)
        tx.state = state

    def _validate(self, tx: RestoreTransaction) -> str:
        """Resolve the target of tx; returns the live root subvolume."""
        if is_timeshift_subvolume(tx.snapshot):
            raise ExternalSnapshotError(
                f"{tx.snapshot} is a Timeshift snapshot; use Timeshift to restore it")
        if not is_snapper_subvolume(tx.snapshot):
            raise InvalidSnapshotError(
                f"{tx.snapshot} is not a snapshot that can be restored by this application")

        repository = self.inventory.repository(tx.uuid)
        repository.id_for(tx.snapshot)

        prefix, _ = split_snapshot_path(tx.snapshot)
        root_subvolume = self.inventory.resolve_root_subvolume()
        tx.target = prefix or root_subvolume
        if not tx.target:
            raise NotFoundError(
                f"{tx.snapshot} belongs to the top-level subvolume of {tx.uuid}, "
                "which cannot be replaced")
        try:
            tx.target_id = repository.id_for(tx.target)
        except NotFoundError:
            raise NotFoundError(
                f"Target {tx.target} of {tx.snapshot} not found on {tx.uuid}") from None
        return root_subvolume

    def restore(self, uuid: str, snapshot: str) -> RestoreResult:
        """Restore snapshot over its target subvolume on filesystem uuid.

        Raises before any change for invalid input. Once the target has
        been moved aside the call ends in a completed, partially completed
        (see RestoreResult.child_errors) or rolled back restore.
        """
        tx = RestoreTransaction(uuid=uuid, snapshot=snapshot.lstrip("/"))
        root_subvolume = self._validate(tx)

        tx.mountpoint = self.inventory.mount_root(uuid)
        if not tx.mountpoint:
            raise MountFailureError(f"Cannot mount the top level of filesystem {uuid}")

        tx.backup_name = backup_name_for(tx.target, self.clock())
        backup = posixpath.join(posixpath.dirname(tx.target), tx.backup_name)
        target_path = os.path.join(tx.mountpoint, tx.target)
        backup_path = os.path.join(tx.mountpoint, backup)

        tx.children = self.inventory.find_children(tx.target_id, uuid)
        logger.debug("children of %s: %s", tx.target, tx.children)

        # Step A: move the live target aside
        if os.path.lexists(backup_path):
            raise BackupRenameError(
                f"Backup path {backup_path} already exists; nothing was changed",
                uuid, tx.target, tx.backup_name)
        try:
            os.rename(target_path, backup_path)
        except OSError as e:
            raise BackupRenameError(
                f"Failed to make a backup of {target_path} at {backup_path}: {e}; "
                "nothing was changed", uuid, tx.target, tx.backup_name) from e
        self._transition(tx, "evacuated")

        # Step B: writable snapshot of the relocated source at the target
        source_path = os.path.join(tx.mountpoint, relocate(tx.snapshot, tx.target, backup))
        command = f"btrfs subvolume snapshot {shlex.quote(source_path)} {shlex.quote(target_path)}"
        timeout = None
        try:
            result = self.run(command, include_stderr=True)
        except CommandTimeoutError as e:
            logger.error("%s", e)
            timeout = e
        else:
            if not result.ok:
                logger.error("snapshot failed (%d): %s", result.exit_code, result.output)

        if not os.path.exists(target_path):
            error = self._rollback(tx, backup_path, target_path, cause=timeout)
            if timeout is not None:
                raise error from timeout
            raise error

        self._transition(tx, "promoted")

        # Step C: move nested subvolumes into the new target
        self._transition(tx, "reattaching")
        errors = []
        for child in tx.children:
            error = self._reattach(tx, child, backup_path, target_path)
            if error is not None:
                errors.append(error)

        self._transition(tx, "partially_completed" if errors else "completed")
        try:
            self.inventory.refresh(uuid)
        except BtrfsAssistantError as e:
            logger.warning("could not reload subvolumes of %s: %s", uuid, e)

        logger.info("original %s saved as %s", tx.target, tx.backup_name)
        return RestoreResult(
            target=tx.target,
            backup_name=tx.backup_name,
            snapshot=tx.snapshot,
            state=tx.state,
            reboot_recommended=tx.target == root_subvolume,
            child_errors=tuple(errors),
        )

    def _rollback(self, tx: RestoreTransaction, backup_path: str,
                  target_path: str,
                  cause: BaseException | None = None) -> PromotionVerificationError:
        """Move the backup back over the target.

        Returns the error describing the rolled back restore, or raises
        RollbackError when the backup cannot be moved back. A cause, such
        as a timed out snapshot command, is chained onto the RollbackError.
        """
        logger.error("%s missing after snapshot; moving %s back", target_path, backup_path)
        try:
            os.rename(backup_path, target_path)
        except OSError as e:
            raise RollbackError(
                f"Failed to restore {tx.target} and failed to move {backup_path} back to "
                f"{target_path}: {e}. Do not reboot until the filesystem {tx.uuid} "
                "has been checked and repaired by hand.",
                tx.uuid, tx.target, tx.backup_name) from (cause or e)
        self._transition(tx, "rolled_back")
        return PromotionVerificationError(
            f"Failed to restore {tx.snapshot} to {tx.target}; the original subvolume "
            "was put back. Please verify the status of your system before rebooting.",
            tx.uuid, tx.target, tx.backup_name, rolled_back=True)

    def _reattach(self, tx: RestoreTransaction, child: str, backup_path: str,
                  target_path: str) -> ChildReattachError | None:
        relative = relative_to_target(child, tx.target)
        source = os.path.join(backup_path, relative)
        destination = os.path.join(target_path, relative)
        try:
            os.makedirs(os.path.dirname(destination), exist_ok=True)
            # a snapshot leaves an empty directory where a nested subvolume was
            if os.path.isdir(destination) and not os.listdir(destination):
                os.rmdir(destination)
            os.rename(source, destination)
        except OSError as e:
            error = ChildReattachError(child, source, destination, str(e),
                                       tx.uuid, tx.target, tx.backup_name)
            logger.error("%s; move it by hand", error)
            return error
        logger.info("moved nested subvolume %s into %s", relative, tx.target)
        return None

    def restore_booted_snapshot(self, boot: BootContext) -> RestoreResult:
        """Make the snapshot the system is booted from the new root."""
        if not boot.booted_from_snapshot:
            raise InvalidSnapshotError("The system is not booted from a snapshot")
        if boot.uuid not in self.inventory.filesystems:
            self.inventory.load()
        # / is the booted snapshot, so the restored root only takes over after a reboot
        return replace(self.restore(boot.uuid, boot.subvolume), reboot_recommended=True)

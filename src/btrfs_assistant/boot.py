# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/boot.py

"""Detect whether the running system was booted from a snapper snapshot."""

import logging
from pathlib import Path

from .parsers import SNAPSHOTS_DIR, parse_kernel_cmdline
from .types import BootContext

logger = logging.getLogger(__name__)

KERNEL_CMDLINE = Path("/proc/cmdline")


def detect_snapshot_boot(cmdline: str | None = None,
                         path: Path = KERNEL_CMDLINE) -> BootContext:
    """Build the boot context from the kernel command line.

    The system counts as booted from a snapshot only when both root=UUID=
    and a rootflags subvol= naming a .snapshots path are present.
    """
    if cmdline is None:
        try:
            cmdline = path.read_text()
        except OSError as e:
            logger.warning("cannot read %s: %s", path, e)
            return BootContext.normal()

    uuid, subvol = parse_kernel_cmdline(cmdline)
    if not uuid or not subvol or SNAPSHOTS_DIR not in subvol:
        return BootContext.normal()

    logger.info("booted from snapshot %s on %s", subvol, uuid)
    return BootContext(booted_from_snapshot=True, uuid=uuid, subvolume=subvol)

# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/errors.py

"""Error kinds raised by inventory, snapper and restore operations."""


class BtrfsAssistantError(Exception):
    """Base class for all btrfs-assistant errors."""


class ConfigurationError(BtrfsAssistantError):
    """Raised when the settings file is malformed."""


class CommandError(BtrfsAssistantError):
    """An external command exited non-zero."""

    def __init__(self, command: str, exit_code: int, output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        message = f"Command failed ({exit_code}): {command}"
        if output:
            message += f"\n{output}"
        super().__init__(message)


class CommandTimeoutError(BtrfsAssistantError):
    """An external command did not finish within its timeout."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s: {command}")


class MalformedLineError(BtrfsAssistantError):
    """A line of tool output did not have the expected shape."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


class NotFoundError(BtrfsAssistantError):
    """A uuid, subvolume or config is absent from the inventory."""


class InvalidSnapshotError(BtrfsAssistantError):
    """The path is not a snapshot this tool can restore."""


class ExternalSnapshotError(InvalidSnapshotError):
    """The path belongs to Timeshift, which must restore it itself."""


class SubvolumeBusyError(BtrfsAssistantError):
    """The subvolume is mounted and cannot be removed."""


class MountFailureError(BtrfsAssistantError):
    """The top-level subvolume of a filesystem could not be mounted."""


class ConfigRefusedError(BtrfsAssistantError):
    """A snapper config name was rejected or the config is protected."""


class RestoreError(BtrfsAssistantError):
    """Base class for failures after a restore has been validated."""

    def __init__(self, message: str, uuid: str = "", target: str = "",
                 backup_name: str = ""):
        self.uuid = uuid
        self.target = target
        self.backup_name = backup_name
        super().__init__(message)


class BackupRenameError(RestoreError):
    """The live target could not be moved aside; nothing was changed."""


class PromotionVerificationError(RestoreError):
    """The snapshot did not appear at the target path after promotion."""

    def __init__(self, message: str, uuid: str = "", target: str = "",
                 backup_name: str = "", rolled_back: bool = True):
        self.rolled_back = rolled_back
        super().__init__(message, uuid, target, backup_name)


class RollbackError(RestoreError):
    """Moving the backup back to the target failed. Do not reboot."""


class ChildReattachError(RestoreError):
    """A nested subvolume could not be moved into the restored target."""

    def __init__(self, child: str, source: str, destination: str,
                 reason: str = "", uuid: str = "", target: str = "",
                 backup_name: str = ""):
        self.child = child
        self.source = source
        self.destination = destination
        message = f"Failed to move nested subvolume {child} from {source} to {destination}"
        if reason:
            message += f": {reason}"
        super().__init__(message, uuid, target, backup_name)

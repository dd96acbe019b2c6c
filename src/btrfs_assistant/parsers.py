# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/parsers.py

"""Line-oriented parsers for btrfs, findmnt and snapper output.

Each `parse_*_line` function handles exactly one line and raises
MalformedLineError when the line does not have the expected shape. The
whole-text parsers decide whether a bad line is skipped or fatal.
"""

import logging
import re
from pathlib import Path
from typing import Final

from .errors import MalformedLineError
from .types import SnapperConfig, SnapshotRecord, SubvolumeEntry

logger = logging.getLogger(__name__)

SNAPSHOTS_DIR: Final = ".snapshots"

_UUID_RE = re.compile(r"\buuid:\s*([0-9a-fA-F-]+)")
_SUBVOL_LIST_RE = re.compile(
    r"^ID\s+(?P<id>\d+)\s+gen\s+\d+\s+"
    r"(?:cgen\s+\d+\s+)?"
    r"(?:parent\s+(?P<parent>\d+)\s+)?"
    r"top level\s+(?P<top>\d+)\s+"
    r"(?:parent_uuid\s+\S+\s+)?(?:received_uuid\s+\S+\s+)?(?:uuid\s+\S+\s+)?"
    r"path\s+(?P<path>.+)$"
)
_CHUNK_RE = re.compile(r"Size:\s*(\d+),\s*Used:\s*(\d+)")
_TABLE_SEP_RE = re.compile(r"\s*[|│]\s*")
_RULE_RE = re.compile(r"^[\s\-─+┼]+$")
_SNAP_NUMBER_RE = re.compile(r"^(\d+)")

# Labelled "Overall" lines of `btrfs filesystem usage -b`
USAGE_FIELDS: Final = {
    "Device size": "total_size",
    "Device allocated": "allocated_size",
    "Used": "used_size",
    "Free (estimated)": "free_size",
}

# Chunk type lines, e.g. "Data,single: Size:123, Used:45 (36.59%)"
CHUNK_FIELDS: Final = {
    "Data,": ("data_size", "data_used"),
    "Metadata,": ("meta_size", "meta_used"),
    "System,": ("sys_size", "sys_used"),
}


def parse_filesystem_show(text: str) -> list[str]:
    """Return the filesystem UUIDs in `btrfs filesystem show` output."""
    uuids = []
    for line in text.splitlines():
        match = _UUID_RE.search(line)
        if match:
            uuids.append(match.group(1))
    return uuids


def parse_findmnt_pair(line: str) -> tuple[str, str]:
    """Split a two-column findmnt line into its columns."""
    parts = line.split(None, 1)
    if len(parts) != 2:
        raise MalformedLineError(line, "expected two columns")
    return parts[0].strip(), parts[1].strip()


def unescape_findmnt(value: str) -> str:
    """Undo the \\xNN escaping findmnt -r applies to paths."""
    return re.sub(r"\\x([0-9a-fA-F]{2})", lambda m: chr(int(m.group(1), 16)), value)


def parse_usage_line(line: str) -> dict[str, int]:
    """Parse one line of `btrfs filesystem usage -b`.

    Returns the Filesystem fields it sets, or an empty dict for lines that
    carry nothing of interest.
    """
    label, sep, rest = line.partition(":")
    label = label.strip()
    if not sep:
        return {}

    if label in USAGE_FIELDS:
        value = rest.split()
        if not value or not (value[0].isascii() and value[0].isdigit()):
            raise MalformedLineError(line, f"no byte count for {label!r}")
        return {USAGE_FIELDS[label]: int(value[0])}

    for prefix, (size_field, used_field) in CHUNK_FIELDS.items():
        if label.startswith(prefix):
            match = _CHUNK_RE.search(rest)
            if not match:
                raise MalformedLineError(line, f"no Size/Used for {label!r}")
            return {size_field: int(match.group(1)), used_field: int(match.group(2))}
    return {}


def parse_usage(text: str) -> dict[str, int]:
    """Parse a usage report; malformed lines are skipped."""
    fields: dict[str, int] = {}
    for line in text.splitlines():
        try:
            fields.update(parse_usage_line(line))
        except MalformedLineError as e:
            logger.debug("skipping usage line: %s", e)
    return fields


def parse_subvolume_line(line: str) -> SubvolumeEntry:
    """Parse one line of `btrfs subvolume list [-p]`.

    The parent is the `parent` column when present, else `top level`.
    """
    match = _SUBVOL_LIST_RE.match(line.strip())
    if not match:
        raise MalformedLineError(line, "not a subvolume list row")
    path = match.group("path").strip()
    if path.startswith("<FS_TREE>/"):
        path = path[len("<FS_TREE>/"):]
    parent = match.group("parent") or match.group("top")
    return SubvolumeEntry(match.group("id"), parent, path)


def parse_subvolume_list(text: str) -> list[SubvolumeEntry]:
    """Parse a subvolume list, skipping blank and malformed lines."""
    entries = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            entries.append(parse_subvolume_line(line))
        except MalformedLineError as e:
            logger.warning("skipping subvolume line: %s", e)
    return entries


def subvol_option(options: str) -> str:
    """Return the subvol= mount option without a leading slash."""
    subvol = ""
    for option in options.split(","):
        option = option.strip()
        if option.startswith("subvol="):
            subvol = option[len("subvol="):]
    return subvol.lstrip("/")


def parse_root_mount(text: str) -> tuple[str, str]:
    """Parse `findmnt -no uuid,options /` into (uuid, subvolume)."""
    line = text.strip().splitlines()[0] if text.strip() else ""
    uuid, options = parse_findmnt_pair(line)
    return uuid, subvol_option(options)


def split_snapshot_path(path: str) -> tuple[str, str]:
    """Split a snapper snapshot path at its .snapshots segment.

    "@home/.snapshots/7/snapshot" gives ("@home", ".snapshots/7/snapshot");
    ".snapshots/3/snapshot" gives ("", ".snapshots/3/snapshot").
    """
    prefix, sep, rest = path.partition(SNAPSHOTS_DIR)
    if not sep:
        raise MalformedLineError(path, "no .snapshots segment")
    return prefix.rstrip("/"), SNAPSHOTS_DIR + rest


def _table_rows(text: str, header_lines: int) -> list[list[str]]:
    rows = []
    for line in text.splitlines()[header_lines:]:
        if not line.strip() or _RULE_RE.match(line):
            continue
        rows.append([cell.strip() for cell in _TABLE_SEP_RE.split(line.strip())])
    return rows


def parse_snapper_config_line(cells: list[str]) -> SnapperConfig:
    if len(cells) < 2 or not cells[0]:
        raise MalformedLineError(" | ".join(cells), "expected config and subvolume")
    return SnapperConfig(cells[0], cells[1])


def parse_snapper_configs(text: str) -> list[SnapperConfig]:
    """Parse `snapper list-configs` (two header lines)."""
    configs = []
    for cells in _table_rows(text, 2):
        try:
            configs.append(parse_snapper_config_line(cells))
        except MalformedLineError as e:
            logger.warning("skipping snapper config line: %s", e)
    return configs


def parse_snapper_snapshot_line(cells: list[str]) -> SnapshotRecord:
    if len(cells) < 2:
        raise MalformedLineError(" | ".join(cells), "expected number and date")
    match = _SNAP_NUMBER_RE.match(cells[0])
    if not match:
        raise MalformedLineError(" | ".join(cells), "snapshot number is not numeric")
    description = cells[2] if len(cells) > 2 else ""
    return SnapshotRecord(int(match.group(1)), cells[1], description)


def parse_snapper_list(text: str) -> list[SnapshotRecord]:
    """Parse `snapper list --columns number,date,description`.

    The header, the rule and snapshot 0 ("current") are skipped.
    """
    records = []
    for cells in _table_rows(text, 3):
        try:
            records.append(parse_snapper_snapshot_line(cells))
        except MalformedLineError as e:
            logger.warning("skipping snapper snapshot line: %s", e)
    return sorted(records, key=lambda r: r.number)


def parse_snapper_get_config(text: str) -> dict[str, str]:
    """Parse `snapper get-config` key/value table (two header lines)."""
    values = {}
    for cells in _table_rows(text, 2):
        if cells and cells[0]:
            values[cells[0]] = cells[1] if len(cells) > 1 else ""
    return values


def _tag_value(line: str, tag: str) -> str:
    return line[len(f"<{tag}>"):].split(f"</{tag}>")[0].strip()


def parse_snapshot_descriptor(text: str) -> SnapshotRecord:
    """Read <num>, <date> and <description> from a snapper info.xml.

    Lines are matched by prefix. The result has number 0 when no usable
    <num> tag is present.
    """
    number, date, description = 0, "", ""
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("<num>"):
            value = _tag_value(line, "num")
            number = int(value) if value.isascii() and value.isdigit() else 0
        elif line.startswith("<date>"):
            date = _tag_value(line, "date")
        elif line.startswith("<description>"):
            description = _tag_value(line, "description")
    return SnapshotRecord(number, date, description)


def descriptor_path(snapshot_path: str | Path) -> Path:
    """Return the info.xml beside a ".../<n>/snapshot" subvolume."""
    path = Path(snapshot_path)
    if path.name == "snapshot":
        path = path.parent
    return path / "info.xml"


def parse_kernel_cmdline(text: str) -> tuple[str, str]:
    """Return the root=UUID= value and the rootflags subvol= value."""
    uuid, subvol = "", ""
    for token in text.split():
        if token.startswith("root=UUID="):
            uuid = token[len("root=UUID="):]
        elif token.startswith("rootflags="):
            subvol = subvol_option(token[len("rootflags="):])
    return uuid, subvol

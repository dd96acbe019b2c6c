# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# tests/test_snapper.py

"""Tests for reading and managing snapper configs and snapshots."""

import pytest

from btrfs_assistant.errors import CommandError, ConfigRefusedError, MountFailureError
from btrfs_assistant.inventory import BtrfsInventory
from btrfs_assistant.snapper import (
    SnapperReader,
    newest_first,
    read_snapshot_descriptor,
    walk_descriptors,
)
from btrfs_assistant.types import BootContext, CommandResult, SnapshotRecord
from tests.fixtures.fake_volume import UUID, FakeVolume, Subvol, info_xml

CONFIGS = (
    "Config | Subvolume\n"
    "-------+----------\n"
    "home   | /home\n"
    "root   | /\n"
)

HOME_LIST = (
    " # | Date                     | Description\n"
    "---+--------------------------+---------------\n"
    "0  |                          | current\n"
    "7  | Sat 18 Oct 2026 12:00:00 | before upgrade\n"
    "9  | Sun 19 Oct 2026 08:00:00 | timeline\n"
)

ROOT_LIST = (
    " # | Date                     | Description\n"
    "---+--------------------------+---------------\n"
    "0  |                          | current\n"
    "1  | Wed 01 Oct 2026 08:00:00 | first root\n"
)


def volume_inventory(volume):
    inventory = BtrfsInventory(volume.runner)
    inventory.load()
    return inventory


@pytest.fixture
def snapper(volume):
    volume.runner.add("snapper list-configs", CONFIGS)
    volume.runner.add("snapper -c home list", HOME_LIST)
    volume.runner.add("snapper -c root list", ROOT_LIST)
    return SnapperReader(volume.runner)


class TestDescriptors:

    def test_read(self, tmp_path):
        path = tmp_path / "info.xml"
        path.write_text(info_xml(4, "2026-10-10 10:10:10", "pre"))
        assert read_snapshot_descriptor(path) == SnapshotRecord(4, "2026-10-10 10:10:10", "pre")

    def test_missing_file(self, tmp_path):
        assert read_snapshot_descriptor(tmp_path / "info.xml") is None

    def test_number_zero(self, tmp_path):
        path = tmp_path / "info.xml"
        path.write_text("<snapshot>\n<date>2026-10-10</date>\n</snapshot>\n")
        assert read_snapshot_descriptor(path) is None

    def test_walk_two_levels(self, tmp_path):
        (tmp_path / "12").mkdir()
        (tmp_path / "12/info.xml").write_text(info_xml(12, "d12", "twelve"))
        (tmp_path / "3").mkdir()
        (tmp_path / "3/info.xml").write_text(info_xml(3, "d3", "three"))
        (tmp_path / "4").mkdir()
        (tmp_path / "4/info.xml").write_text("not a descriptor")
        (tmp_path / "5/deep").mkdir(parents=True)
        (tmp_path / "5/deep/info.xml").write_text(info_xml(5, "d5", "too deep"))
        assert [r.number for r in walk_descriptors(tmp_path)] == [3, 12]

    def test_walk_missing_dir(self, tmp_path):
        assert walk_descriptors(tmp_path / "absent") == []

    def test_newest_first(self):
        records = [SnapshotRecord(2), SnapshotRecord(10), SnapshotRecord(5)]
        assert [r.number for r in newest_first(records)] == [10, 5, 2]


class TestListing:

    def test_configs(self, snapper):
        assert [c.name for c in snapper.list_configs()] == ["home", "root"]

    def test_snapshots(self, snapper):
        records = snapper.list_snapshots("home")
        assert [r.number for r in records] == [7, 9]
        assert records[0].description == "before upgrade"

    def test_load_uses_snapper_when_booted_normally(self, snapper, inventory):
        snapshots = snapper.load(inventory)
        assert sorted(snapshots) == ["home", "root"]
        assert [r.number for r in snapshots["root"]] == [1]
        assert snapshots["root"][0].timestamp == "Wed 01 Oct 2026 08:00:00"

    def test_load_reads_root_from_disk_when_booted_from_snapshot(self, volume, snapper, inventory):
        volume.write("@/.snapshots/2/info.xml", info_xml(2, "2026-10-02 08:00:00", "second"))
        reader = SnapperReader(volume.runner, BootContext(True, UUID, "@/.snapshots/1/snapshot"))

        snapshots = reader.load(inventory)

        assert [(r.number, r.description) for r in snapshots["root"]] == [
            (1, "first root"), (2, "second")]
        assert not volume.runner.called("snapper -c root list")
        assert [r.number for r in snapshots["home"]] == [7, 9]

    def test_boot_fallback_mount_failure(self, volume, snapper, inventory):
        volume.runner.add("findmnt -nO subvolid=5", "")
        volume.runner.add("mount ", CommandResult(32, "mount: failed"))
        reader = SnapperReader(volume.runner, BootContext(True, UUID, "@/.snapshots/1/snapshot"))
        with pytest.raises(MountFailureError):
            reader.load(inventory)


class TestRestoreMode:

    def test_grouped_by_target(self, volume, snapper, inventory):
        groups = snapper.load_restore_mode(inventory)
        assert sorted(groups) == ["@", "@home"]
        [home] = groups["@home"]
        assert home.uuid == UUID
        assert home.subvol_id == "264"
        assert home.path == "@home/.snapshots/7/snapshot"
        assert home.timestamp == "2026-10-18 12:00:00"
        assert home.description == "before upgrade"
        assert [s.subvol_id for s in groups["@"]] == ["258"]

    def test_snapshot_without_descriptor_skipped(self, volume, snapper, inventory):
        (volume.path("@home/.snapshots/7/info.xml")).unlink()
        assert "@home" not in snapper.load_restore_mode(inventory)

    def test_top_level_snapshots_grouped_under_root_subvolume(self, tmp_path):
        volume = FakeVolume(tmp_path / "top", subvolumes=[
            Subvol(256, 5, "@"),
            Subvol(300, 5, ".snapshots"),
            Subvol(301, 300, ".snapshots/5/snapshot"),
        ])
        volume.write(".snapshots/5/info.xml", info_xml(5, "2026-10-05", "five"))
        groups = SnapperReader(volume.runner).load_restore_mode(volume_inventory(volume))
        assert list(groups) == ["@"]

    def test_top_level_snapshots_when_root_is_top_level(self, tmp_path):
        volume = FakeVolume(tmp_path / "top", root_subvolume="", subvolumes=[
            Subvol(300, 5, ".snapshots"),
            Subvol(301, 300, ".snapshots/5/snapshot"),
        ])
        volume.write(".snapshots/5/info.xml", info_xml(5, "2026-10-05", "five"))
        groups = SnapperReader(volume.runner).load_restore_mode(volume_inventory(volume))
        assert list(groups) == ["root"]


class TestManagement:

    def test_create_snapshot(self, volume, snapper):
        volume.runner.add("snapper -c home create", "")
        snapper.create_snapshot("home")
        assert volume.runner.calls[-1] == "snapper -c home create -d 'Manual Snapshot'"

    def test_create_snapshot_failure(self, volume, snapper):
        volume.runner.add("snapper -c home create", CommandResult(1, "IO Error."))
        with pytest.raises(CommandError, match="IO Error"):
            snapper.create_snapshot("home", "pre-update")

    def test_delete_snapshots(self, volume, snapper):
        volume.runner.add("snapper -c home delete", "")
        snapper.delete_snapshots("home", [9, 7, 9])
        assert volume.runner.calls[-1] == "snapper -c home delete 7 9"

    def test_delete_nothing(self, volume, snapper):
        snapper.delete_snapshots("home", [])
        assert not volume.runner.called("snapper -c home delete")

    def test_create_config(self, volume, snapper):
        volume.runner.add("snapper -c mydata create-config", "")
        assert snapper.create_config(" my data ", "/data") == "mydata"
        assert volume.runner.calls[-1] == "snapper -c mydata create-config /data"

    @pytest.mark.parametrize("name", ["", "   ", "home"])
    def test_create_config_refused(self, volume, snapper, name):
        with pytest.raises(ConfigRefusedError):
            snapper.create_config(name, "/data")
        assert not volume.runner.called(f"snapper -c {name.strip()} create-config")

    def test_delete_root_config_refused(self, volume, snapper):
        with pytest.raises(ConfigRefusedError):
            snapper.delete_config("root")
        assert not any("delete-config" in c for c in volume.runner.calls)

    def test_delete_config(self, volume, snapper):
        volume.runner.add("snapper -c home delete-config", "")
        snapper.delete_config("home")
        assert volume.runner.calls[-1] == "snapper -c home delete-config"

    def test_get_config(self, volume, snapper):
        volume.runner.add("snapper -c home get-config",
                          "Key | Value\n----+------\nSUBVOLUME | /home\nNUMBER_LIMIT | 50\n")
        assert snapper.get_config("home") == {"SUBVOLUME": "/home", "NUMBER_LIMIT": "50"}

    def test_set_config(self, volume, snapper):
        volume.runner.add("snapper -c home set-config", "")
        snapper.set_config("home", {"TIMELINE_CREATE": "no", "NUMBER_LIMIT": "10"})
        assert volume.runner.calls[-1] == \
            "snapper -c home set-config TIMELINE_CREATE=no NUMBER_LIMIT=10"

    def test_set_nothing(self, volume, snapper):
        snapper.set_config("home", {})
        assert not volume.runner.called("snapper -c home set-config")

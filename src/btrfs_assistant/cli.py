# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/cli.py

"""Command line interface for btrfs-assistant."""

from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from .boot import detect_snapshot_boot
from .config import Settings, load_settings
from .errors import BtrfsAssistantError
from .inventory import (
    BtrfsInventory,
    human_size,
    is_snapper_subvolume,
    is_timeshift_subvolume,
    needs_balance,
    space_advice,
)
from .log import setup_logging
from .restore import SnapshotRestorer
from .runner import CommandRunner
from .snapper import TIMELINE_KEYS, SnapperReader, newest_first
from .types import BootContext, RestoreResult

app = typer.Typer(help="Inspect btrfs filesystems and restore snapper snapshots")
console = Console()


@dataclass
class State:
    settings: Settings
    runner: CommandRunner
    boot: BootContext

    def inventory(self) -> BtrfsInventory:
        inventory = BtrfsInventory(self.runner)
        inventory.load()
        return inventory

    def snapper(self) -> SnapperReader:
        reader = SnapperReader(self.runner, self.boot, self.settings.snapper_bin)
        if not reader.available():
            typer.echo(f"Error: snapper ({self.settings.snapper_bin}) is not installed", err=True)
            raise typer.Exit(1)
        return reader


def _fail(e: Exception) -> NoReturn:
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings file (TOML)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
) -> None:
    """Load settings and detect a snapshot boot once per invocation."""
    try:
        settings = load_settings(config)
    except BtrfsAssistantError as e:
        _fail(e)
    setup_logging("DEBUG" if debug else settings.log_level)
    ctx.obj = State(
        settings=settings,
        runner=CommandRunner(settings.command_timeout),
        boot=detect_snapshot_boot(),
    )


@app.command()
def filesystems(ctx: typer.Context) -> None:
    """Show usage of every mounted btrfs filesystem."""
    try:
        fs_map = ctx.obj.inventory().filesystems
    except BtrfsAssistantError as e:
        _fail(e)

    if not fs_map:
        console.print("[yellow]No mounted btrfs filesystems found[/yellow]")
        return

    table = Table(title="Btrfs Filesystems")
    table.add_column("UUID", style="cyan")
    table.add_column("Mountpoint", style="green")
    table.add_column("Size", justify="right")
    table.add_column("Allocated", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("Data", justify="right", style="yellow")
    table.add_column("Metadata", justify="right", style="yellow")
    table.add_column("System", justify="right", style="yellow")

    for uuid, fs in sorted(fs_map.items()):
        table.add_row(
            uuid,
            fs.mountpoint,
            human_size(fs.total_size),
            human_size(fs.allocated_size),
            human_size(fs.used_size),
            human_size(fs.free_size),
            f"{fs.data_percent:.1f}%",
            f"{fs.meta_percent:.1f}%",
            f"{fs.sys_percent:.1f}%",
        )
    console.print(table)

    for uuid, fs in sorted(fs_map.items()):
        balance = "balance recommended" if needs_balance(fs) else "balance not needed"
        console.print(f"  {uuid}: {space_advice(fs)}; {balance}")


@app.command()
def subvolumes(
    ctx: typer.Context,
    uuid: str = typer.Argument(..., help="Filesystem UUID"),
    include_snapshots: bool = typer.Option(False, "--include-snapshots", "-a",
                                           help="Also list snapper and Timeshift snapshots"),
) -> None:
    """List the subvolumes of a filesystem."""
    try:
        paths = ctx.obj.inventory().get(uuid).subvolumes
    except BtrfsAssistantError as e:
        _fail(e)

    table = Table(title=f"Subvolumes of {uuid}")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Path", style="green")
    for subvol_id, path in sorted(paths.items(), key=lambda kv: kv[1]):
        if include_snapshots or not (is_snapper_subvolume(path) or is_timeshift_subvolume(path)):
            table.add_row(subvol_id, path)
    console.print(table)


@app.command("delete-subvolume")
def delete_subvolume(
    ctx: typer.Context,
    uuid: str = typer.Argument(..., help="Filesystem UUID"),
    path: str = typer.Argument(..., help="Subvolume path relative to the top level"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a subvolume that is neither mounted nor a snapshot."""
    if not yes:
        typer.confirm(f"Are you sure you want to delete {path}?", abort=True)
    try:
        ctx.obj.inventory().delete_subvolume(uuid, path)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print(f"[green]Deleted[/green] {path}")


@app.command()
def configs(ctx: typer.Context) -> None:
    """List snapper configs."""
    try:
        config_list = ctx.obj.snapper().list_configs()
    except BtrfsAssistantError as e:
        _fail(e)

    table = Table(title="Snapper Configs")
    table.add_column("Config", style="cyan")
    table.add_column("Subvolume", style="green")
    for config in config_list:
        table.add_row(config.name, config.subvolume)
    console.print(table)


@app.command()
def snapshots(
    ctx: typer.Context,
    config: str = typer.Argument("root", help="Snapper config name"),
) -> None:
    """List the snapshots of a snapper config, newest first."""
    state: State = ctx.obj
    try:
        inventory = state.inventory()
        all_snapshots = state.snapper().load(inventory)
    except BtrfsAssistantError as e:
        _fail(e)

    if config not in all_snapshots:
        _fail(BtrfsAssistantError(f"No snapper config named {config}"))
    if state.boot.booted_from_snapshot and config == "root":
        console.print(f"[yellow]Booted from snapshot {state.boot.subvolume}; "
                      "root snapshots read from disk[/yellow]")

    table = Table(title=f"Snapshots of {config}")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Date", style="green")
    table.add_column("Description", style="magenta")
    for record in newest_first(all_snapshots[config]):
        table.add_row(str(record.number), record.timestamp, record.description)
    console.print(table)


@app.command("snapshot-create")
def snapshot_create(
    ctx: typer.Context,
    config: str = typer.Argument(..., help="Snapper config name"),
    description: str = typer.Option("Manual Snapshot", "--description", "-d"),
) -> None:
    """Take a snapshot now."""
    try:
        ctx.obj.snapper().create_snapshot(config, description)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print(f"[green]Snapshot of {config} created[/green]")


@app.command("snapshot-delete")
def snapshot_delete(
    ctx: typer.Context,
    config: str = typer.Argument(..., help="Snapper config name"),
    numbers: list[int] = typer.Argument(..., help="Snapshot numbers"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete snapshots of a config."""
    if not yes:
        typer.confirm("Are you sure you want to delete the selected snapshot(s)?", abort=True)
    try:
        ctx.obj.snapper().delete_snapshots(config, numbers)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print(f"[green]Deleted {len(numbers)} snapshot(s) of {config}[/green]")


@app.command("config-show")
def config_show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapper config name"),
    all_keys: bool = typer.Option(False, "--all", help="Show every key, not just timeline settings"),
) -> None:
    """Show the settings of a snapper config."""
    try:
        values = ctx.obj.snapper().get_config(name)
    except BtrfsAssistantError as e:
        _fail(e)

    table = Table(title=f"Snapper config {name}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in values.items():
        if all_keys or key in TIMELINE_KEYS:
            table.add_row(key, value)
    console.print(table)


@app.command("config-set")
def config_set(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapper config name"),
    assignments: list[str] = typer.Argument(..., help="KEY=VALUE pairs"),
) -> None:
    """Change settings of a snapper config."""
    values = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key:
            _fail(ValueError(f"Expected KEY=VALUE, got {assignment!r}"))
        values[key.strip()] = value.strip()
    try:
        ctx.obj.snapper().set_config(name, values)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print("[green]Changes saved[/green]")


@app.command("config-create")
def config_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="New config name"),
    path: str = typer.Argument(..., help="Mounted btrfs path to snapshot"),
) -> None:
    """Create a snapper config."""
    try:
        created = ctx.obj.snapper().create_config(name, path)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print(f"[green]Created config {created} for {path}[/green]")


@app.command("config-delete")
def config_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Snapper config name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a snapper config. This cannot be undone."""
    if not yes:
        typer.confirm(f"Are you sure you want to delete {name}? This cannot be undone", abort=True)
    try:
        ctx.obj.snapper().delete_config(name)
    except BtrfsAssistantError as e:
        _fail(e)
    console.print(f"[green]Deleted config {name}[/green]")


@app.command("restore-list")
def restore_list(ctx: typer.Context) -> None:
    """List every snapper snapshot subvolume that can be restored."""
    state: State = ctx.obj
    try:
        inventory = state.inventory()
        groups = SnapperReader(state.runner, state.boot,
                               state.settings.snapper_bin).load_restore_mode(inventory)
    except BtrfsAssistantError as e:
        _fail(e)

    if not groups:
        console.print("[yellow]No snapper snapshots found[/yellow]")
        return

    for prefix, subvols in sorted(groups.items()):
        table = Table(title=f"Snapshots of {prefix}")
        table.add_column("Subvolume", style="cyan")
        table.add_column("Date", style="green")
        table.add_column("Description", style="magenta")
        table.add_column("UUID", style="white")
        for subvol in subvols:
            table.add_row(subvol.path, subvol.timestamp, subvol.description, subvol.uuid)
        console.print(table)


def _print_restore_result(result: RestoreResult) -> None:
    if result.partial:
        console.print("[yellow]The restore was successful but the migration of the nested "
                      "subvolumes failed.[/yellow] Please migrate these subvolumes manually:")
        for error in result.child_errors:
            console.print(f"  {error.child}: {error.source} -> {error.destination}")
    else:
        console.print("[green]Snapshot restoration complete.[/green]")
    console.print(f"A copy of the original subvolume has been saved as {result.backup_name}")
    if result.reboot_recommended:
        console.print("[bold]Please reboot immediately[/bold]")


@app.command()
def restore(
    ctx: typer.Context,
    uuid: str = typer.Argument(..., help="Filesystem UUID"),
    snapshot: str = typer.Argument(..., help="Snapshot subvolume, e.g. @home/.snapshots/7/snapshot"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Restore a snapper snapshot over the subvolume it was taken of."""
    if not yes:
        typer.confirm(f"Are you sure you want to restore {snapshot}?", abort=True)
    try:
        result = SnapshotRestorer(ctx.obj.inventory()).restore(uuid, snapshot)
    except BtrfsAssistantError as e:
        _fail(e)
    _print_restore_result(result)


@app.command("boot-status")
def boot_status(
    ctx: typer.Context,
    do_restore: bool = typer.Option(False, "--restore", help="Restore the booted snapshot"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Report whether the system is booted from a snapshot."""
    boot: BootContext = ctx.obj.boot
    if not boot.booted_from_snapshot:
        console.print("Not booted from a snapshot")
        return

    console.print(f"[yellow]You are currently booted into snapshot {boot.subvolume}[/yellow]"
                  f" on {boot.uuid}")
    if not do_restore:
        return
    if not yes:
        typer.confirm("Would you like to restore it?", abort=True)
    try:
        result = SnapshotRestorer(BtrfsInventory(ctx.obj.runner)).restore_booted_snapshot(boot)
    except BtrfsAssistantError as e:
        _fail(e)
    _print_restore_result(result)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()

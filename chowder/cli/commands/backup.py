"""Backup export and restore commands."""

from pathlib import Path

import click
from rich.prompt import Confirm
from rich.table import Table

from chowder.storage.backup import BackupManager


@click.group()
def backup() -> None:
    """Export or restore the whole local store."""


@backup.command("export")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_command(ctx: click.Context, path: Path) -> None:
    """Write a JSON snapshot of every record to PATH."""
    console = ctx.obj.console
    manager = ctx.obj.open_manager()

    written = BackupManager(manager).export_to(path)
    console.print(f"[green]✓[/green] Exported backup to {written}")


@backup.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Replace local data without asking")
@click.pass_context
def import_command(ctx: click.Context, path: Path, yes: bool) -> None:
    """Replace all local data with the snapshot in PATH."""
    console = ctx.obj.console

    if not yes and not Confirm.ask(
        "[yellow]This replaces all local data. Continue?[/yellow]", console=console
    ):
        console.print("Import cancelled")
        return

    manager = ctx.obj.open_manager()
    stats = BackupManager(manager).import_from(path)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Restored", justify="right")
    for name, count in stats.counts.items():
        table.add_row(name, str(count))

    console.print(table)
    console.print(f"[green]✓[/green] Restored {stats.total} records from {path}")

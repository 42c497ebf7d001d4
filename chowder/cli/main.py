"""Main CLI entry point and application setup."""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from click.exceptions import Exit
from rich.console import Console
from rich.table import Table

from chowder import __version__
from chowder.cli.commands import backup, categories, sync
from chowder.cli.config import Settings, load_config
from chowder.storage.factory import RUNTIMES, create_backend
from chowder.storage.repository import RepositoryManager

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """CLI context that holds shared resources."""

    settings: Settings
    repository_manager: RepositoryManager
    console: Console
    debug: bool = False
    opened: bool = False

    def open_manager(self) -> RepositoryManager:
        """Open the store on first use; commands that never touch it stay cheap."""
        if not self.opened:
            self.repository_manager.open()
            self.opened = True
        return self.repository_manager

    def close(self) -> None:
        if self.opened:
            self.repository_manager.close()
            self.opened = False


def setup_logging(
    verbose: bool = False, quiet: bool = False, debug: bool = False
) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose or debug:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
        if not debug
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


class ChowderGroup(click.Group):
    """Custom group that turns unexpected errors into a one-line message."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print("[yellow]Interrupted[/yellow]")
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except Exception as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug:
                raise
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print(f"[red]Error:[/red] {e}")
            else:
                click.echo(f"Error: {e}", err=True)
            ctx.exit(1)


@click.group(cls=ChowderGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    help="Override data directory location",
)
@click.option(
    "--runtime",
    type=click.Choice(RUNTIMES),
    help="Storage runtime: native (SQLite) or web (object store)",
)
@click.version_option(
    version=__version__, prog_name="chowder", message="chowder version %(version)s"
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
    config: Path | None,
    data_dir: Path | None,
    runtime: str | None,
) -> None:
    """Local-first place, visit and dish tracker.

    Keeps everything in a local store and pushes changes to the remote
    service whenever a session and a network connection are available.
    """
    setup_logging(verbose=verbose, quiet=quiet, debug=debug)
    console = create_console(no_color=no_color)

    try:
        config_data = load_config(config)
        if data_dir:
            config_data["data_dir"] = str(data_dir)
        if runtime:
            config_data["runtime"] = runtime
        settings = Settings.from_mapping(config_data)
    except ValueError as e:
        if debug:
            raise
        console.print(f"[red]Error loading configuration:[/red] {e}")
        ctx.exit(1)

    backend = create_backend(settings.runtime, settings.data_dir)
    ctx.obj = Context(
        settings=settings,
        repository_manager=RepositoryManager(backend),
        console=console,
        debug=debug,
    )
    ctx.call_on_close(ctx.obj.close)


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create or upgrade the local store and seed default categories."""
    console = ctx.obj.console
    manager = ctx.obj.open_manager()
    stats = manager.migration_stats

    console.print(
        f"[green]✓[/green] Store ready at {ctx.obj.settings.data_dir} "
        f"({manager.backend.name})"
    )
    if stats is not None:
        console.print(
            f"  Migrations: {stats.applied} applied, {stats.skipped} already present"
        )
        if stats.seeded:
            console.print(f"  Seeded {stats.seeded} default place categories")
        for error in stats.errors:
            console.print(f"  [yellow]Warning:[/yellow] {error}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show record counts and pending changes per collection."""
    console = ctx.obj.console
    manager = ctx.obj.open_manager()

    console.print("\n[bold]Store Status[/bold]\n")
    console.print(f"Location: {ctx.obj.settings.data_dir}")
    console.print(f"Backend: {manager.backend.name}\n")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Records", justify="right")
    table.add_column("Pending sync", justify="right")

    pending = 0
    for name, counts in manager.statistics().items():
        dirty = counts.get("dirty")
        if dirty:
            pending += dirty
        table.add_row(
            name,
            str(counts["total"]),
            "-" if dirty is None else str(dirty),
        )

    console.print(table)
    if pending:
        console.print(f"\n[yellow]{pending} record(s) waiting to sync[/yellow]")
    else:
        console.print("\n[green]Everything is synced[/green]")


cli.add_command(categories.categories)
cli.add_command(backup.backup)
cli.add_command(sync.sync)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()

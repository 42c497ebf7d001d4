"""Category maintenance commands."""

import click


@click.group()
def categories() -> None:
    """Manage place and dish categories."""


@categories.command("restore-defaults")
@click.pass_context
def restore_defaults(ctx: click.Context) -> None:
    """Re-create any missing default place categories."""
    console = ctx.obj.console
    manager = ctx.obj.open_manager()

    added = manager.restore_defaults()
    if added:
        console.print(f"[green]✓[/green] Restored {added} default categories")
    else:
        console.print("All default categories are present")

"""Sync command: push local changes to the remote service."""

import asyncio

import click

from chowder.sync.api import ApiClient
from chowder.sync.connectivity import ConnectivityState
from chowder.sync.engine import SyncEngine, SyncReport
from chowder.sync.session import TokenSession


def _print_report(console, report: SyncReport) -> None:
    if report.skipped:
        console.print(f"[yellow]Sync skipped:[/yellow] {report.skipped}")
        return

    for entity, count in report.counts.items():
        console.print(f"  {entity}: {count} pushed")
    for error in report.errors:
        console.print(f"  [red]✗[/red] {error}")

    style = "green" if report.ok else "yellow"
    console.print(
        f"[{style}]Sync finished:[/{style}] {report.pushed} pushed, "
        f"{report.failed} failed"
    )


async def _run(engine: SyncEngine, api: ApiClient, watch: bool) -> SyncReport | None:
    try:
        if not watch:
            return await engine.trigger()
        await engine.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await engine.stop()
    finally:
        await api.aclose()


@click.command()
@click.option("--watch", "-w", is_flag=True, help="Keep syncing on an interval")
@click.option("--token", envvar="CHOWDER_API_TOKEN", help="Bearer token to use")
@click.pass_context
def sync(ctx: click.Context, watch: bool, token: str | None) -> None:
    """Push dirty records to the remote service."""
    console = ctx.obj.console
    settings = ctx.obj.settings

    if not settings.api_url:
        raise click.UsageError(
            "No API URL configured; set api.url or CHOWDER_API_URL"
        )

    manager = ctx.obj.open_manager()
    session = TokenSession(token or settings.api_token)
    connectivity = ConnectivityState()
    api = ApiClient(
        settings.api_url,
        session,
        connectivity,
        timeout=settings.api_timeout,
        retries=settings.api_retries,
    )
    engine = SyncEngine(
        manager, api, session, connectivity, interval=settings.sync_interval
    )

    if watch:
        console.print(
            f"Syncing every {settings.sync_interval:g}s, press Ctrl+C to stop"
        )
    report = asyncio.run(_run(engine, api, watch))
    if report is not None:
        _print_report(console, report)

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from casetalink.cli.common import (
    StatusPrinter,
    build_database,
    devices_table,
    load_settings_or_exit,
)
from casetalink.config import Settings
from casetalink.core import Reconciler
from casetalink.models import DeviceRecord, InstanceStatus
from casetalink.storage import Database
from casetalink.utils.redaction import Redactor


async def _reconcile(
    settings: Settings, db: Database, printer: StatusPrinter
) -> tuple[InstanceStatus, list[DeviceRecord]]:
    reconciler = Reconciler(settings, db, on_status=printer)
    try:
        status = await reconciler.start()
        return status, list(reconciler.devices)
    finally:
        printer.active = False
        await reconciler.shutdown()


def devices(
    redact: bool = typer.Option(False, "--redact", help="Redact serial numbers"),
) -> None:
    """Connect to the paired bridge and list its devices."""
    console = Console()
    settings = load_settings_or_exit()
    db = build_database(settings)

    try:
        status, found = asyncio.run(_reconcile(settings, db, StatusPrinter(console)))
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None

    if status is not InstanceStatus.CONNECTED:
        raise typer.Exit(1)

    if not found:
        console.print("No controllable devices reported by the bridge.")
        return
    console.print(devices_table(found, Redactor(enabled=redact)))
    console.print(f"\n[green]{len(found)} device(s)[/green]")


def register(app: typer.Typer) -> None:
    app.command()(devices)

from __future__ import annotations

import asyncio

import typer
from pydantic import ValidationError
from rich.console import Console

from casetalink.cli.common import (
    StatusPrinter,
    build_database,
    devices_table,
    load_settings_or_exit,
)
from casetalink.config import Settings
from casetalink.core import Reconciler
from casetalink.errors import PairingBusy
from casetalink.models import BridgeConfig, DeviceRecord, InstanceStatus
from casetalink.storage import Database
from casetalink.utils.redaction import Redactor


async def _apply_config(
    settings: Settings, db: Database, update: BridgeConfig, printer: StatusPrinter
) -> tuple[InstanceStatus, list[DeviceRecord]]:
    reconciler = Reconciler(settings, db, on_status=printer)
    try:
        status = await reconciler.config_updated(update)
        return status, list(reconciler.devices)
    finally:
        printer.active = False
        await reconciler.shutdown()


def pair(
    host: str = typer.Argument(..., help="IP address of the bridge"),
    port: int | None = typer.Option(
        None, "--port", "-p", min=1, max=65535, help="Session port (default: config)"
    ),
    redact: bool = typer.Option(False, "--redact", help="Redact serial numbers"),
) -> None:
    """Pair with the bridge at HOST and connect to it."""
    console = Console()
    settings = load_settings_or_exit()
    db = build_database(settings)

    try:
        stored = db.load_config()
        stored_bundle = db.load_bundle()
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None

    if port is None:
        port = stored.port if stored.host else settings.session.port
    try:
        update = BridgeConfig(host=host, port=port)
    except ValidationError as exc:
        console.print(f"[red]Invalid host:[/red] {host}")
        raise typer.Exit(1) from exc

    if stored.host != update.host or stored_bundle is None:
        console.print(
            "Press the small black pairing button on the back of the bridge "
            f"(you have {settings.pairing.button_timeout:.0f}s)..."
        )

    try:
        status, devices = asyncio.run(
            _apply_config(settings, db, update, StatusPrinter(console))
        )
    except (PairingBusy, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None

    if status is not InstanceStatus.CONNECTED:
        raise typer.Exit(1)
    console.print(devices_table(devices, Redactor(enabled=redact)))


def forget() -> None:
    """Clear stored credentials and bridge id (the host is kept)."""
    settings = load_settings_or_exit()
    db = build_database(settings)
    Reconciler(settings, db).forget()
    Console().print(f"[green]✓[/green] Cleared credentials in {db.path}")


def register(app: typer.Typer) -> None:
    app.command()(pair)
    app.command()(forget)

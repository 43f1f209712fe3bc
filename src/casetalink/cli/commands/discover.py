from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from casetalink.cli.common import load_settings_or_exit
from casetalink.core import discover_bridges
from casetalink.utils.redaction import Redactor

logger = logging.getLogger(__name__)


def discover(
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", min=0.1, help="Seconds to listen (default: config)"
    ),
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact addresses and bridge ids in output",
    ),
) -> None:
    """Discover bridges on the local network via mDNS."""
    console = Console()
    settings = load_settings_or_exit()

    config = settings.discovery
    if timeout is not None:
        config = config.model_copy(update={"browse_timeout": timeout})

    console.print(f"Discovering bridges for {config.browse_timeout:.0f}s...")
    logger.info(
        "mDNS discovery settings: service=%s, timeout=%.2fs",
        config.service_type,
        config.browse_timeout,
    )
    bridges = asyncio.run(discover_bridges(config))

    if not bridges:
        console.print("No bridges found. Enter the bridge address manually.")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("Address", style="cyan")
    table.add_column("Bridge ID", style="green")

    for address, bridge_id in sorted(bridges.items()):
        table.add_row(redactor.redact_ip(address), redactor.redact_serial(bridge_id))

    console.print(table)
    console.print(f"\n[green]Found {len(bridges)} bridge(s)[/green]")


def register(app: typer.Typer) -> None:
    app.command()(discover)

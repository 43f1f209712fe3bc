from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from casetalink.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from casetalink.models import DeviceRecord, InstanceStatus
from casetalink.storage import Database
from casetalink.utils.redaction import Redactor

STATUS_STYLES = {
    InstanceStatus.INITIALIZING: "dim",
    InstanceStatus.CONNECTING: "cyan",
    InstanceStatus.CONNECTED: "green",
    InstanceStatus.BAD_CONFIG: "yellow",
    InstanceStatus.CONNECTION_FAILURE: "red",
    InstanceStatus.DISCONNECTED: "red",
}


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = data_dir or data_dir_from_settings(settings)
    return Database(path)


def format_status(status: InstanceStatus, detail: str = "") -> str:
    style = STATUS_STYLES[status]
    text = f"[{style}]{status.value}[/{style}]"
    return f"{text} {detail}" if detail else text


def devices_table(devices: list[DeviceRecord], redactor: Redactor) -> Table:
    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Model")
    table.add_column("Serial")
    table.add_column("Area", style="yellow")

    ordered = sorted(devices, key=lambda item: (item.associated_area or "", item.name))
    for device in ordered:
        table.add_row(
            device.name,
            device.device_type,
            device.model_number,
            redactor.redact_serial(device.serial_number),
            device.associated_area or "",
        )
    return table


class StatusPrinter:
    """Status callback that prints updates until silenced."""

    def __init__(self, console: Console) -> None:
        self._console = console
        self.active = True

    def __call__(self, status: InstanceStatus, detail: str) -> None:
        if self.active:
            self._console.print(format_status(status, detail))

from __future__ import annotations

import typer
from rich.console import Console

from casetalink.cli.common import (
    build_database,
    load_settings_or_exit,
    resolve_config_path_or_exit,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def status() -> None:
        """Show the stored bridge configuration without connecting."""
        settings = load_settings_or_exit()
        db = build_database(settings)
        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        try:
            config = db.load_config()
            bundle = db.load_bundle()
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        console = Console()
        console.print("[bold]casetalink status[/bold]\n")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")
        console.print(f"Data directory: {db.path}")

        console.print("\n[bold]Bridge[/bold]")
        console.print(f"Host: {config.host or '[yellow]not set[/yellow]'}")
        console.print(f"Port: {config.port}")
        identity = config.identity
        console.print(f"Bridge ID: {identity if identity else 'not set'}")
        paired = "[green]yes[/green]" if bundle else "[yellow]no[/yellow]"
        console.print(f"Credentials: {paired}")
